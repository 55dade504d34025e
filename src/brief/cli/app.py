"""Main CLI application using Typer."""
import asyncio

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..config import PRIORITY_KEY, SETTING_SOURCES, ConfigStore, Priority, load_settings, resolve_priority
from ..errors import ConfigError
from .providers import model_persister, require_llm

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="brief",
    help="Streaming chat client for the terminal",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

CONFIG_ACTIONS = ("show", "set", "path")


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


@app.command()
def chat(
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to use (overrides LLM_MODEL and the config file)"
    ),
    system: str | None = typer.Option(
        None,
        "--system",
        "-s",
        help="System prompt seeded at the start of the conversation"
    ),
    base_url: str | None = typer.Option(
        None,
        "--base-url",
        help="OpenAI-compatible endpoint URL"
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Deadline in seconds for each reply"
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Show log panel with level: debug (all), info, warning, or error"
    ),
):
    """Launch the interactive chat TUI."""
    store = ConfigStore()
    try:
        settings = load_settings(
            store,
            model=model,
            system_prompt=system,
            base_url=base_url,
            request_timeout=timeout,
        )
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    llm = require_llm(settings, console)

    async def _chat():
        from ..ui import run_tui

        await run_tui(
            llm,
            settings,
            log_level=log_level,
            on_model_change=model_persister(store),
        )

    try:
        asyncio.run(_chat())
    except KeyboardInterrupt:
        pass
    console.print("[dim]Goodbye![/dim]")


@app.command()
def config(
    action: str = typer.Argument(
        "show",
        help="show, set or path"
    ),
    key: str | None = typer.Argument(
        None,
        help="Dotted config key for 'set', e.g. openai.api_key"
    ),
    value: str | None = typer.Argument(
        None,
        help="Value for 'set'"
    ),
):
    """Show or change settings in the config file."""
    store = ConfigStore()

    if action not in CONFIG_ACTIONS:
        console.print(f"[red]Error: Unknown action '{action}'. Use one of: {', '.join(CONFIG_ACTIONS)}[/red]")
        raise typer.Exit(code=1)

    if action == "path":
        console.print(str(store.path))
        return

    try:
        if action == "set":
            fields = {cfg_key: name for name, (_, cfg_key) in SETTING_SOURCES.items()}
            known = set(fields) | {PRIORITY_KEY}
            if key is None or value is None:
                console.print("[red]Error: Usage: brief config set KEY VALUE[/red]")
                raise typer.Exit(code=1)
            if key not in known:
                console.print(f"[red]Error: Unknown key '{key}'. Known keys: {', '.join(sorted(known))}[/red]")
                raise typer.Exit(code=1)
            # Validate before writing so a rejected value never reaches the file
            if key in fields:
                load_settings(store, **{fields[key]: value})
            elif value.strip().lower() not in {p.value for p in Priority}:
                raise ConfigError(f"{PRIORITY_KEY} must be one of: {', '.join(p.value for p in Priority)}")
            store.set(key, value)
            console.print(f"[green]Saved {key}[/green] [dim]({store.path})[/dim]")
            return

        settings = load_settings(store)
        priority = resolve_priority(store)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Env / config key", style="dim")

    for field_name, (env_var, cfg_key) in SETTING_SOURCES.items():
        current = getattr(settings, field_name)
        if current is None:
            shown = "[dim]-[/dim]"
        elif field_name == "api_key":
            shown = _mask(str(current))
        else:
            shown = str(current)
        table.add_row(field_name, shown, f"{env_var} / {cfg_key}")

    console.print(table)
    console.print(f"[dim]Config file: {store.path}[/dim]")
    console.print(f"[dim]Priority: {priority.value} first[/dim]")


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
