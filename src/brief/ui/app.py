"""Main Textual TUI application.

Implements the render surface for the session controller: draws transcript
snapshots, shows notices and turns keyboard input into controller events.
"""

import asyncio
from collections.abc import Callable, Sequence

from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.widgets import Footer, Header

from ..config import Settings
from ..llm import LLMProvider
from ..session import (
    Close,
    ContextWindow,
    KeyPress,
    LineSubmitted,
    Resize,
    SessionController,
    SurfaceReady,
)
from ..streaming import CompletionStreamAdapter
from ..transcript import Turn
from .config import ERROR_NOTICE_TIMEOUT, NOTICE_TIMEOUT, LogLevel
from .styles import APP_CSS
from .themes import BRIEF_CRT
from .widgets import ChatHistoryWidget, ChatInputBar, DebugPanel, StatusBar, copy_text


class BriefApp(App):
    """Textual TUI for a streaming chat session."""

    CSS = APP_CSS
    TITLE = "brief"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", priority=True),
        Binding("escape", "cancel_reply", "Cancel", priority=True),
        Binding("ctrl+k", "clear_chat", "Clear Chat", priority=True),
        Binding("ctrl+r", "copy_last_response", "Copy Response", priority=True),
        Binding("ctrl+d", "toggle_debug", "Debug", priority=True),
    ]

    def __init__(self, controller: SessionController, log_level: str | None = None) -> None:
        super().__init__()
        self._controller = controller
        self._log_level = log_level
        self._controller.attach(self)

    @property
    def controller(self) -> SessionController:
        return self._controller

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield ChatHistoryWidget(id="chat-history")
        yield DebugPanel(id="debug-panel")
        with Vertical(id="bottom-bar"):
            yield StatusBar(id="status")
            yield ChatInputBar(id="chat-input-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Called when app is mounted."""
        self.register_theme(BRIEF_CRT)
        self.theme = "brief-crt"

        if self._log_level is not None:
            log_panel = self.query_one("#debug-panel", DebugPanel)
            log_panel.log_level = LogLevel.from_string(self._log_level)
            log_panel.show()
            log_panel.info("TUI", f"Log panel enabled with level: {self._log_level.upper()}")

        self._controller.set_debug_callback(self._route_log)
        self.sub_title = self._controller.model
        self._run_session()
        self._controller.post(SurfaceReady())
        self.query_one("#chat-input-bar", ChatInputBar).focus_input()

    @work(exclusive=True, group="session")
    async def _run_session(self) -> None:
        """Run the controller loop as a background async worker."""
        await self._controller.run()

    def _route_log(self, level: str, component: str, message: str) -> None:
        """Route debug messages to the log panel."""
        try:
            log_panel = self.query_one("#debug-panel", DebugPanel)
        except NoMatches:
            # Screen already torn down at exit
            return
        if level == "debug":
            log_panel.debug(component, message)
        elif level == "info":
            log_panel.info(component, message)
        elif level == "warning":
            log_panel.warning(component, message)
        elif level == "error":
            log_panel.error(component, message)

    # -- render surface ------------------------------------------------------

    def draw(self, snapshot: Sequence[Turn], partial_text: str) -> None:
        """Redraw the conversation and the status line."""
        chat = self.query_one("#chat-history", ChatHistoryWidget)
        chat.render_transcript(snapshot)

        used, window = self._controller.context_usage()
        status = self.query_one("#status", StatusBar)
        status.update_status(
            self._controller.model,
            self._controller.state.value,
            used,
            window,
            last_usage=self._controller.last_usage,
        )
        self.sub_title = self._controller.model

    def notify(
        self,
        message: str,
        *,
        title: str = "",
        severity: str = "information",
        timeout: float | None = None,
        markup: bool = False,
    ) -> None:
        """Show a toast; errors stay up longer."""
        if timeout is None:
            timeout = ERROR_NOTICE_TIMEOUT if severity == "error" else NOTICE_TIMEOUT
        super().notify(message, title=title, severity=severity, timeout=timeout, markup=markup)

    # -- input ---------------------------------------------------------------

    def on_chat_input_bar_submitted(self, event: ChatInputBar.Submitted) -> None:
        """Handle user input submission."""
        self._controller.post(LineSubmitted(event.value))

    def on_resize(self, event: events.Resize) -> None:
        self._controller.post(Resize(event.size.width, event.size.height))

    async def action_quit(self) -> None:
        """Ask the controller to shut down; it exits the app once streams are cancelled."""
        self._controller.post(Close())

    def action_cancel_reply(self) -> None:
        """Cancel the reply being streamed."""
        self._controller.post(KeyPress("escape"))

    def action_clear_chat(self) -> None:
        """Clear the conversation."""
        self._controller.post(LineSubmitted("/clear"))

    def action_toggle_debug(self) -> None:
        """Toggle the log panel visibility."""
        log_panel = self.query_one("#debug-panel", DebugPanel)
        is_visible = log_panel.toggle()
        self.notify(f"Log panel {'shown' if is_visible else 'hidden'}", timeout=2)

    def action_copy_last_response(self) -> None:
        """Copy last assistant response to clipboard."""
        chat = self.query_one("#chat-history", ChatHistoryWidget)
        response = chat.get_last_response()
        if response:
            target = copy_text(self, response)
            self.notify(f"Response copied ({target})")
        else:
            self.notify("No response to copy", severity="warning")


def build_controller(
    llm: LLMProvider,
    settings: Settings,
    on_model_change: Callable[[str], None] | None = None,
) -> SessionController:
    """Wire adapter, context policy and controller from settings."""
    adapter = CompletionStreamAdapter(
        llm,
        model=settings.model,
        request_timeout=settings.request_timeout,
        temperature=settings.temperature,
    )
    return SessionController(
        None,
        adapter,
        system_prompt=settings.system_prompt,
        context_window=ContextWindow(settings.max_context_tokens),
        on_model_change=on_model_change,
    )


async def run_tui(
    llm: LLMProvider,
    settings: Settings,
    log_level: str | None = None,
    on_model_change: Callable[[str], None] | None = None,
) -> None:
    """Run the Textual TUI.

    Args:
        llm: LLM provider instance (closed on exit)
        settings: Resolved settings (model, system prompt, timeout, context budget)
        log_level: Log level for panel (debug/info/warning/error), None to hide
        on_model_change: Called with the new model name after /model <name>
    """
    async with llm:
        controller = build_controller(llm, settings, on_model_change)
        app = BriefApp(controller, log_level=log_level)
        try:
            await app.run_async()
        except (KeyboardInterrupt, asyncio.CancelledError):
            pass
