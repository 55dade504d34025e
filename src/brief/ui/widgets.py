"""Custom Textual widgets for the TUI.

Hides widget implementation details:
- Turn rendering and incremental transcript updates
- Input history management
- Status line formatting
- Log rendering and level filtering
"""

from collections.abc import Sequence
from datetime import datetime

import pyperclip
from rich.markdown import Markdown as RichMarkdown
from rich.text import Text
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Click
from textual.message import Message
from textual.widgets import Button, RichLog, Static, TextArea

from ..transcript import Role, Turn, TurnStatus
from .config import (
    INPUT_HISTORY_MAX_SIZE,
    LOG_MAX_MESSAGE_LENGTH,
    LOG_TIMESTAMP_FORMAT,
    STREAMING_CURSOR,
    TURN_TIMESTAMP_FORMAT,
    LogLevel,
)

_ROLE_LABELS = {
    Role.USER: ("You", ">", "user-turn"),
    Role.ASSISTANT: ("Assistant", "<", "assistant-turn"),
    Role.SYSTEM: ("System", "#", "system-turn"),
}


def copy_text(app, text: str) -> str:
    """Copy to the system clipboard, falling back to the terminal (OSC 52).

    Returns:
        "system" or "terminal", whichever clipboard received the text
    """
    try:
        pyperclip.copy(text)
        return "system"
    except pyperclip.PyperclipException:
        app.copy_to_clipboard(text)
        return "terminal"


def turn_note(turn: Turn) -> str:
    """Inline annotation shown under a turn, empty if none."""
    if turn.status == TurnStatus.FAILED:
        return f"failed: {turn.error}" if turn.error else "failed"
    if turn.status == TurnStatus.CANCELLED:
        return "cancelled"
    if turn.status == TurnStatus.PENDING:
        return "waiting for reply..."
    if turn.finish_reason == "length":
        return "truncated at the token limit"
    return ""


class TurnView(Vertical):
    """One rendered turn: header, content and an optional status note."""

    def __init__(self, turn: Turn, *args, **kwargs) -> None:
        label, icon, role_class = _ROLE_LABELS[turn.role]
        super().__init__(*args, classes=f"turn {role_class}", **kwargs)
        timestamp = turn.created_at.strftime(TURN_TIMESTAMP_FORMAT)
        self._header = Static(f"{icon} {label} [{timestamp}]", classes="turn-header", markup=False)
        self._content = Static("", classes="turn-content")
        self._note = Static("", classes="turn-note", markup=False)
        self._rendered: tuple[str, TurnStatus, str | None, str | None] | None = None
        self.turn = turn

    def compose(self):
        yield self._header
        yield self._content
        yield self._note

    def on_mount(self) -> None:
        self.update_turn(self.turn, force=True)

    def update_turn(self, turn: Turn, *, force: bool = False) -> None:
        """Re-render if the turn changed since the last render."""
        self.turn = turn
        key = (turn.content, turn.status, turn.error, turn.finish_reason)
        if not force and key == self._rendered:
            return
        if not self.is_mounted:
            return
        self._rendered = key

        if turn.status == TurnStatus.STREAMING:
            self._content.update(Text(turn.content + STREAMING_CURSOR))
        elif turn.role == Role.ASSISTANT and turn.status == TurnStatus.COMPLETE:
            self._content.update(RichMarkdown(turn.content))
        else:
            self._content.update(Text(turn.content))
        self._content.display = bool(turn.content) or turn.status == TurnStatus.STREAMING

        note = turn_note(turn)
        self._note.update(note)
        self._note.display = bool(note)
        self.set_class(turn.status == TurnStatus.FAILED, "-failed")
        self.set_class(turn.status == TurnStatus.CANCELLED, "-cancelled")

    def on_click(self, event: Click) -> None:
        """Copy turn content to the clipboard when clicked."""
        event.stop()
        if self.turn.content:
            target = copy_text(self.app, self.turn.content)
            self.app.notify(f"Copied ({target})", timeout=2)


class ChatHistoryWidget(VerticalScroll):
    """Scrollable transcript view, updated incrementally from snapshots."""

    BORDER_TITLE = "Chat"
    BORDER_SUBTITLE = "Conversation"
    ALLOW_MAXIMIZE = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._views: list[TurnView] = []
        self._snapshot: list[Turn] = []

    def render_transcript(self, snapshot: Sequence[Turn]) -> None:
        """Bring the view in line with a transcript snapshot.

        Existing turns are updated in place; a snapshot that no longer
        extends the displayed one (after a clear) rebuilds the view.
        """
        turn_ids = [turn.turn_id for turn in snapshot]
        shown_ids = [view.turn.turn_id for view in self._views]

        if turn_ids[: len(shown_ids)] != shown_ids:
            self.remove_children()
            self._views = []

        for view, turn in zip(self._views, snapshot):
            view.update_turn(turn)

        new_views = [TurnView(turn) for turn in snapshot[len(self._views):]]
        if new_views:
            self._views.extend(new_views)
            self.mount(*new_views)

        self._snapshot = list(snapshot)
        streaming = any(turn.status == TurnStatus.STREAMING for turn in snapshot)
        self.set_class(streaming, "streaming")
        visible = sum(1 for turn in snapshot if turn.role != Role.SYSTEM)
        self.border_subtitle = f"{visible} messages" if visible else "Conversation"
        self.scroll_end(animate=False)

    def get_last_response(self) -> str | None:
        """Get the last assistant response with content."""
        for turn in reversed(self._snapshot):
            if turn.role == Role.ASSISTANT and turn.content:
                return turn.content
        return None


class ChatInputBar(Horizontal):
    """Chat input bar with TextArea and Send button."""

    class Submitted(Message):
        """Message sent when user submits input."""

        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._history: list[str] = []
        self._history_index: int = -1

    def compose(self):
        text_area = TextArea(id="chat-input", show_line_numbers=False)
        text_area.cursor_blink = False
        yield text_area
        yield Button("Send", id="send-btn", variant="success").with_tooltip(
            "Submit message (Enter); newline with Ctrl+J"
        )

    def on_mount(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        text_area.focus()
        text_area.highlight_cursor_line = False

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            self._submit()

    def on_key(self, event) -> None:
        """Handle keyboard shortcuts.

        Enter submits; Ctrl+J inserts a newline, since terminals do not
        pass modifiers with Enter.
        """
        if event.key == "enter":
            self._submit()
            event.prevent_default()
            event.stop()
        elif event.key == "ctrl+j":
            self.query_one("#chat-input", TextArea).insert("\n")
            event.prevent_default()
            event.stop()
        elif event.key == "up" and self._is_cursor_at_start():
            self._navigate_history(-1)
            event.prevent_default()
            event.stop()
        elif event.key == "down" and self._is_cursor_at_end():
            self._navigate_history(1)
            event.prevent_default()
            event.stop()

    def _is_cursor_at_start(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        return text_area.cursor_location == (0, 0)

    def _is_cursor_at_end(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        lines = text_area.text.split("\n")
        last_row = len(lines) - 1
        last_col = len(lines[-1]) if lines else 0
        return text_area.cursor_location == (last_row, last_col)

    def _navigate_history(self, direction: int) -> None:
        if not self._history:
            return
        text_area = self.query_one("#chat-input", TextArea)
        if direction < 0:
            if self._history_index == -1:
                self._history_index = len(self._history) - 1
            elif self._history_index > 0:
                self._history_index -= 1
        else:
            if self._history_index == -1:
                return
            if self._history_index < len(self._history) - 1:
                self._history_index += 1
            else:
                self._history_index = -1
                text_area.text = ""
                return
        text_area.text = self._history[self._history_index]

    def _submit(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        value = text_area.text.strip()
        if value:
            if not self._history or self._history[-1] != value:
                self._history.append(value)
                del self._history[:-INPUT_HISTORY_MAX_SIZE]
            self._history_index = -1
            text_area.text = ""
            self.post_message(self.Submitted(value))

    def focus_input(self) -> None:
        """Focus the text input."""
        self.query_one("#chat-input", TextArea).focus()


class StatusBar(Static):
    """One-line session status: model, state, context usage and last reply tokens."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._model = ""
        self._state = "idle"
        self._used = 0
        self._window = 0
        self._prompt_tokens = 0
        self._completion_tokens = 0

    def update_status(
        self,
        model: str,
        state: str,
        used: int,
        window: int,
        last_usage: dict[str, int] | None = None,
    ) -> None:
        """Update the status line.

        Args:
            model: Model for the next reply
            state: Session state name
            used: Estimated context tokens
            window: Context window size
            last_usage: Provider token counts for the last reply, if reported
        """
        self._model = model
        self._state = state
        self._used = used
        self._window = window
        self._prompt_tokens = (last_usage or {}).get("prompt_tokens") or 0
        self._completion_tokens = (last_usage or {}).get("completion_tokens") or 0
        self._update_display()

    def _update_display(self) -> None:
        percent = (self._used / self._window * 100) if self._window else 0.0
        state_color = {
            "streaming": "bold yellow",
            "cancelling": "yellow",
            "awaiting_input": "green",
        }.get(self._state, "dim")
        parts = [
            f"[bold cyan]Model:[/] {self._model}",
            f"[{state_color}]{self._state.replace('_', ' ')}[/]",
            f"[bold magenta]Context:[/] {self._used:,}/{self._window:,} [dim]({percent:.0f}%)[/]",
        ]
        if self._prompt_tokens or self._completion_tokens:
            parts.append(f"[bold green]Last:[/] {self._prompt_tokens:,} in / {self._completion_tokens:,} out")
        parts.append("[dim]/help for commands[/]")
        self.update("  ".join(parts))

    def get_plain_text(self) -> str:
        text = f"Model: {self._model}  State: {self._state}  Context: {self._used}/{self._window}"
        if self._prompt_tokens or self._completion_tokens:
            text += f"  Last: {self._prompt_tokens} in / {self._completion_tokens} out"
        return text


class DebugPanel(RichLog):
    """Log panel for real-time session tracing with level filtering.

    Shows timestamped log messages from all components.
    Supports standard log levels: DEBUG < INFO < WARNING < ERROR.
    Hidden by default, shown with --log-level flag or toggled with Ctrl+D.
    """

    BORDER_TITLE = "Log"
    BORDER_SUBTITLE = "Trace log"

    COMPONENT_COLORS = {
        "TUI": "cyan",
        "Session": "green",
        "Stream": "magenta",
        "Config": "bright_blue",
    }

    LEVEL_COLORS = {
        LogLevel.DEBUG: "dim white",
        LogLevel.INFO: "cyan",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "red",
    }

    def __init__(self, *args, log_level: int = LogLevel.DEBUG, **kwargs) -> None:
        super().__init__(
            *args,
            markup=True,
            highlight=False,
            auto_scroll=True,
            wrap=False,
            **kwargs
        )
        self._log_level = log_level

    @property
    def log_level(self) -> int:
        """Current log level threshold."""
        return self._log_level

    @log_level.setter
    def log_level(self, level: int) -> None:
        self._log_level = level
        self._update_subtitle()

    def _update_subtitle(self) -> None:
        if self.display:
            self.border_subtitle = f"Level: {LogLevel.name(self._log_level)}"
        else:
            self.border_subtitle = "Hidden"

    def on_mount(self) -> None:
        """Hide by default."""
        self.display = False

    def log(
        self,
        component: str,
        message: str,
        level: int = LogLevel.DEBUG
    ) -> None:
        """Add a log entry if it meets the current level threshold.

        Args:
            component: Component name (TUI, Session, Stream, ...)
            message: Log message
            level: Log level (LogLevel.DEBUG, INFO, WARNING, ERROR)
        """
        if level < self._log_level:
            return

        if len(message) > LOG_MAX_MESSAGE_LENGTH:
            message = message[:LOG_MAX_MESSAGE_LENGTH] + "..."

        line = Text()
        line.append(datetime.now().strftime(LOG_TIMESTAMP_FORMAT), style="dim")
        line.append(" ")
        line.append(f"{LogLevel.name(level):<5}", style=self.LEVEL_COLORS.get(level, "white"))
        line.append(" ")
        line.append(f"[{component}]", style=self.COMPONENT_COLORS.get(component, "white"))
        line.append(f" {message}")
        self.write(line)

    def debug(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.DEBUG)

    def info(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.INFO)

    def warning(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.WARNING)

    def error(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.ERROR)

    def show(self) -> None:
        self.display = True
        self._update_subtitle()

    def hide(self) -> None:
        self.display = False
        self.border_subtitle = "Hidden"

    def toggle(self) -> bool:
        """Toggle visibility. Returns new state."""
        if self.display:
            self.hide()
            return False
        self.show()
        return True
