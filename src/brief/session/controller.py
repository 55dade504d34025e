"""Session controller.

Orchestrates one chat session: owns the transcript, starts a completion
stream per user turn, merges fragments into the transcript and drives the
render surface.

Every input event and stream event arrives through a single inbox queue and
is handled by one loop, so the transcript has exactly one writer.
"""

import asyncio
import contextlib
from collections.abc import Callable
from enum import Enum
from typing import Any
from uuid import uuid4

from ..errors import BriefError, StaleTurnError
from ..streaming import CompletionStreamAdapter, Fragment, StreamEnded, StreamHandle, StreamState
from ..transcript import TranscriptStore, Turn, TurnRef, TurnStatus
from .commands import (
    Cancel,
    Clear,
    Command,
    Help,
    Model,
    New,
    Noop,
    Quit,
    Retry,
    Send,
    classify,
    help_text,
)
from .context import ContextWindow
from .port import Close, InputEvent, KeyPress, LineSubmitted, RenderSurface, Resize, SurfaceReady

ControllerEvent = InputEvent | Fragment | StreamEnded


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    STREAMING = "streaming"
    CANCELLING = "cancelling"


class SessionController:
    """State machine for one interactive chat session.

    States: idle -> awaiting_input on surface ready; awaiting_input ->
    streaming on a sent message; streaming -> awaiting_input on the final
    fragment, an error or a cancel (through the transient cancelling state).

    Example:
        controller = SessionController(surface, adapter, system_prompt="Be brief.")
        controller.post(SurfaceReady())  # surfaces post input events
        await controller.run()           # returns after Quit or Close
    """

    def __init__(
        self,
        surface: RenderSurface | None,
        adapter: CompletionStreamAdapter,
        *,
        system_prompt: str | None = None,
        context_window: ContextWindow | None = None,
        on_model_change: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            surface: Render surface to draw to (may be attached later)
            adapter: Stream adapter; the controller registers itself as its sink
            system_prompt: Optional system prompt seeded as the first turn
            context_window: Policy selecting the context sent with each request
            on_model_change: Called with the new model name after /model <name>
        """
        self._surface = surface
        self._adapter = adapter
        self._adapter.set_sink(self.post)
        self._system_prompt = system_prompt.strip() if system_prompt else None
        self._context_window = context_window or ContextWindow()
        self._on_model_change = on_model_change

        self._store = TranscriptStore()
        self._inbox: asyncio.Queue[ControllerEvent] = asyncio.Queue()
        self._state = SessionState.IDLE
        self._session_id = str(uuid4())
        self._handle: StreamHandle | None = None
        self._reply_ref: TurnRef | None = None
        self._last_sequence = -1
        self._last_usage: dict[str, int] | None = None
        self._composer: list[str] = []
        self._closed = False
        self._dirty = False
        self._debug_callback: Any | None = None

        self._seed()

    # -- wiring --------------------------------------------------------------

    def attach(self, surface: RenderSurface) -> None:
        """Attach the render surface."""
        self._surface = surface

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback and propagate it to the adapter.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback
        self._adapter.set_debug_callback(callback)

    def _debug(self, level: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, "Session", message)

    # -- read-only views -----------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def model(self) -> str:
        return self._adapter.model

    @property
    def active_handle(self) -> StreamHandle | None:
        return self._handle

    @property
    def pending_input(self) -> str:
        """Text typed so far on raw-key surfaces."""
        return "".join(self._composer)

    def snapshot(self) -> list[Turn]:
        """Read-only copy of the transcript."""
        return self._store.snapshot()

    def context_usage(self) -> tuple[int, int]:
        """(estimated tokens used, context window size)."""
        return self._context_window.usage(self._store.snapshot(), self.model)

    @property
    def last_usage(self) -> dict[str, int] | None:
        """Token counts the provider reported for the last complete reply."""
        return self._last_usage

    # -- event intake --------------------------------------------------------

    def post(self, event: ControllerEvent) -> None:
        """Queue an event for the controller loop (never blocks)."""
        self._inbox.put_nowait(event)

    async def run(self) -> None:
        """Consume the inbox until Quit or Close.

        Redraws are coalesced across bursts of queued events; the last
        event of a burst always triggers a redraw of the latest state.
        """
        self._debug("info", f"Session {self._session_id[:8]} started")
        try:
            while not self._closed:
                event = await self._inbox.get()
                try:
                    self.handle(event, redraw=self._inbox.empty())
                except StaleTurnError as e:
                    self._debug("error", f"Transcript contract violated: {e}")
                    self._notify(f"Internal error: {e}", severity="error")
                    self._recover()
                    if self._inbox.empty():
                        self.flush()
        finally:
            await self._adapter.aclose()
            self._debug("info", f"Session {self._session_id[:8]} ended")

    def handle(self, event: ControllerEvent, *, redraw: bool = True) -> None:
        """Apply one event synchronously.

        Args:
            event: Input or stream event
            redraw: Redraw now if anything changed (False defers to a later event)

        Raises:
            StaleTurnError: If a transcript contract is violated
        """
        if self._closed:
            self._debug("debug", f"Ignored {type(event).__name__} after quit")
            return

        if isinstance(event, Fragment):
            self._apply_fragment(event)
        elif isinstance(event, StreamEnded):
            self._apply_end(event)
        elif isinstance(event, LineSubmitted):
            self.submit(event.text)
        elif isinstance(event, KeyPress):
            self._apply_key(event)
        elif isinstance(event, SurfaceReady):
            if self._state == SessionState.IDLE:
                self._state = SessionState.AWAITING_INPUT
                self._debug("debug", "Surface ready")
            self._dirty = True
        elif isinstance(event, Resize):
            self._dirty = True
        elif isinstance(event, Close):
            self._quit()
        else:
            raise TypeError(f"Unexpected event type: {type(event).__name__}")

        if redraw:
            self.flush()

    def flush(self) -> None:
        """Redraw if the transcript changed since the last draw."""
        if not self._dirty or self._surface is None or self._closed:
            return
        self._dirty = False
        self._surface.draw(self._store.snapshot(), self._partial_text())

    # -- commands ------------------------------------------------------------

    def submit(self, text: str) -> Command:
        """Classify a completed input line and execute it.

        Returns:
            The command that was executed
        """
        if self._state == SessionState.IDLE:
            self._debug("warning", "Input before surface ready ignored")
            return Noop("not ready")

        last = self._store.last()
        command = classify(
            text,
            last_status=last.status if last is not None else None,
            streaming=self._state == SessionState.STREAMING,
        )
        self._debug("debug", f"Command: {command!r}")
        self.execute(command)
        return command

    def execute(self, command: Command) -> None:
        """Execute a classified command."""
        if isinstance(command, Send):
            self._store.append(Turn.user(command.text))
            self._start_reply()
        elif isinstance(command, Retry):
            self._start_reply()
        elif isinstance(command, Cancel):
            self._cancel_stream()
        elif isinstance(command, Clear):
            self._reset()
            self._notify("Conversation cleared")
        elif isinstance(command, New):
            self._reset()
            self._session_id = str(uuid4())
            self._debug("info", f"New session {self._session_id[:8]}")
            self._notify("New session started")
        elif isinstance(command, Model):
            self._switch_model(command.name)
        elif isinstance(command, Help):
            self._notify(help_text())
        elif isinstance(command, Quit):
            self._quit()
        elif isinstance(command, Noop):
            if command.reason and command.reason != "empty input":
                self._notify(command.reason)
        else:
            raise TypeError(f"Unexpected command: {command!r}")

    # -- transitions ---------------------------------------------------------

    def _start_reply(self) -> None:
        """Append a pending assistant turn and start streaming into it."""
        self._reply_ref = self._store.append(Turn.pending_assistant())
        self._dirty = True
        context = self._context_window.select(self._store.snapshot(), self.model)
        try:
            self._handle = self._adapter.begin(context)
        except Exception as e:
            self._debug("error", f"Could not start stream: {e}")
            self._store.finalize(self._reply_ref, TurnStatus.FAILED, error=str(e) or type(e).__name__)
            self._reply_ref = None
            self._notify(f"Request failed: {e}", severity="error")
            return
        self._last_sequence = -1
        self._state = SessionState.STREAMING
        self._debug("info", f"Streaming reply on {self._handle.id[:8]} ({len(context)} context turns)")

    def _apply_fragment(self, fragment: Fragment) -> None:
        if not self._is_tracked(fragment.stream_id):
            self._debug("debug", f"Discarded fragment {fragment.sequence} from stale stream {fragment.stream_id[:8]}")
            return
        if fragment.sequence <= self._last_sequence:
            self._debug("warning", f"Dropped out-of-order fragment {fragment.sequence} (last {self._last_sequence})")
            return

        assert self._reply_ref is not None
        self._store.update_streaming(self._reply_ref, fragment.text)
        self._last_sequence = fragment.sequence
        self._dirty = True

        if fragment.is_final:
            self._store.finalize(
                self._reply_ref, TurnStatus.COMPLETE, finish_reason=fragment.finish_reason
            )
            self._last_usage = fragment.usage
            self._debug("info", f"Reply complete ({fragment.finish_reason})")
            if fragment.finish_reason == "length":
                self._notify("Reply truncated at the token limit", severity="warning")
            self._end_stream()

    def _apply_end(self, ended: StreamEnded) -> None:
        if not self._is_tracked(ended.stream_id):
            self._debug("debug", f"Discarded {ended.state.value} status from stale stream {ended.stream_id[:8]}")
            return

        assert self._reply_ref is not None
        if ended.state == StreamState.ERRORED:
            self._store.finalize(self._reply_ref, TurnStatus.FAILED, error=ended.cause)
            self._debug("error", f"Reply failed: {ended.cause}")
            self._notify(f"Reply failed: {ended.cause}", severity="error")
        elif ended.state == StreamState.CANCELLED:
            self._store.finalize(self._reply_ref, TurnStatus.CANCELLED)
        else:
            self._store.finalize(self._reply_ref, TurnStatus.COMPLETE)
        self._dirty = True
        self._end_stream()

    def _cancel_stream(self) -> None:
        """Cancel the active stream, keeping whatever text has arrived."""
        if self._handle is None or self._reply_ref is None:
            return
        self._state = SessionState.CANCELLING
        handle = self._handle
        self._adapter.cancel(handle)
        self._store.finalize(self._reply_ref, TurnStatus.CANCELLED)
        self._debug("info", f"Stream {handle.id[:8]} cancelled after fragment {self._last_sequence}")
        self._dirty = True
        self._end_stream()

    def _end_stream(self) -> None:
        self._handle = None
        self._reply_ref = None
        self._last_sequence = -1
        if self._state != SessionState.IDLE:
            self._state = SessionState.AWAITING_INPUT

    def _reset(self) -> None:
        self._cancel_stream()
        self._store.clear()
        self._last_usage = None
        self._seed()
        self._dirty = True

    def _switch_model(self, name: str | None) -> None:
        if not name:
            self._notify(f"Model: {self.model}")
            return
        self._adapter.model = name
        self._debug("info", f"Model switched to {name}")
        self._notify(f"Model set to {name}")
        if self._on_model_change is not None:
            try:
                self._on_model_change(name)
            except BriefError as e:
                self._debug("warning", f"Model choice not saved: {e}")
                self._notify(f"Model choice not saved: {e}", severity="warning")
        self._dirty = True

    def _apply_key(self, event: KeyPress) -> None:
        key = event.key
        if key == "escape":
            if self._state == SessionState.STREAMING:
                self._cancel_stream()
        elif key == "ctrl+c":
            self._quit()
        elif key == "enter":
            line = "".join(self._composer)
            self._composer.clear()
            self.submit(line)
        elif key == "backspace":
            if self._composer:
                self._composer.pop()
        elif key == "space":
            self._composer.append(" ")
        elif event.is_printable:
            self._composer.append(key)

    def _quit(self) -> None:
        if self._closed:
            return
        self._cancel_stream()
        self._state = SessionState.IDLE
        self._closed = True
        self._debug("info", "Quit requested")
        if self._surface is not None:
            self._surface.exit()

    def _recover(self) -> None:
        """Drop the tracked stream after a contract violation."""
        if self._handle is not None:
            self._adapter.cancel(self._handle)
        if self._reply_ref is not None:
            with contextlib.suppress(StaleTurnError):
                self._store.finalize(self._reply_ref, TurnStatus.FAILED, error="internal error")
        self._end_stream()
        self._dirty = True

    # -- helpers -------------------------------------------------------------

    def _seed(self) -> None:
        if self._system_prompt:
            self._store.append(Turn.system(self._system_prompt))

    def _is_tracked(self, stream_id: str) -> bool:
        return self._handle is not None and stream_id == self._handle.id

    def _partial_text(self) -> str:
        if self._reply_ref is None:
            return ""
        return self._store.get(self._reply_ref).content

    def _notify(self, message: str, *, severity: str = "information") -> None:
        if self._surface is not None:
            self._surface.notify(message, severity=severity)
