"""Provider factory functions for CLI.

Centralizes creation of the LLM provider from resolved settings.
Hides configuration details from command implementations.
"""

from collections.abc import Callable

import typer
from rich.console import Console

from ..config import ConfigStore, Settings
from ..errors import ConfigError
from ..llm import LLMProvider, create_llm_provider

# Default console for output
_console = Console()


def require_llm(settings: Settings, console: Console | None = None) -> LLMProvider:
    """Create the LLM provider, exiting if it cannot be configured.

    Args:
        settings: Resolved settings
        console: Optional Rich console for output

    Returns:
        LLM provider instance

    Raises:
        typer.Exit: If the API key is missing or the provider is unknown
    """
    con = console or _console
    try:
        api_key = settings.require_api_key()
        return create_llm_provider(
            settings.provider,
            api_key=api_key,
            model=settings.model,
            base_url=settings.base_url,
        )
    except (ConfigError, ValueError) as e:
        con.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def model_persister(store: ConfigStore) -> Callable[[str], None]:
    """Callback saving the model chosen with /model to the config file."""
    def _persist(name: str) -> None:
        store.set("model", name)
    return _persist
