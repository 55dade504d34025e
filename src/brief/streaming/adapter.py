"""Completion stream adapter.

Hides how a reply is pulled from the provider: one asyncio task per request
drains the provider stream, numbers the deltas and hands them to a sink as
Fragments. The sink is the only channel back to the session controller.
"""

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

from ..errors import StreamTimeoutError
from ..llm import ChatMessage, LLMProvider
from ..transcript import Turn
from .models import Fragment, StreamEnded, StreamHandle, StreamState
from .reorder import ReorderBuffer

StreamEvent = Fragment | StreamEnded
StreamSink = Callable[[StreamEvent], None]

# Finish reasons that mean the exchange failed rather than completed
ERROR_FINISH_REASONS = frozenset({"error"})


def to_chat_messages(turns: Sequence[Turn]) -> list[ChatMessage]:
    """Convert transcript turns to provider messages, skipping empty ones."""
    return [
        ChatMessage(role=turn.role.value, content=turn.content)
        for turn in turns
        if turn.content
    ]


def describe_error(error: BaseException) -> str:
    """Short, user-facing description of a transport failure."""
    message = str(error).strip()
    if not message:
        return type(error).__name__
    return f"{type(error).__name__}: {message}"


class CompletionStreamAdapter:
    """Starts and cancels completion streams against an LLMProvider.

    Deltas may arrive from the provider as plain strings (numbered in
    arrival order) or as (index, text) pairs carrying a transport index;
    the latter are re-ordered before they reach the sink.

    Example:
        adapter = CompletionStreamAdapter(llm, sink=controller.post)
        handle = adapter.begin(context_turns)
        ...
        adapter.cancel(handle)
    """

    def __init__(
        self,
        llm: LLMProvider,
        sink: StreamSink | None = None,
        model: str | None = None,
        request_timeout: float | None = 120.0,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            llm: Provider used for every request
            sink: Receiver of fragments and terminal statuses
            model: Model override (None uses the provider default)
            request_timeout: Deadline in seconds for a whole exchange (None disables)
            temperature: Sampling temperature passed to the provider
            max_tokens: Maximum tokens to generate per reply
        """
        self._llm = llm
        self._sink = sink
        self._model = model
        self._request_timeout = request_timeout
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._tasks: dict[str, asyncio.Task] = {}
        self._handles: dict[str, StreamHandle] = {}
        # Streams whose terminal event has been emitted
        self._ended: set[str] = set()
        self._debug_callback: Any | None = None

    @property
    def model(self) -> str:
        """Model used for new streams."""
        return self._model or self._llm.model

    @model.setter
    def model(self, value: str | None) -> None:
        self._model = value

    @property
    def request_timeout(self) -> float | None:
        return self._request_timeout

    def set_sink(self, sink: StreamSink) -> None:
        """Register the receiver of stream events."""
        self._sink = sink

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback: callable(level, component, message)."""
        self._debug_callback = callback

    def _debug(self, level: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, "Stream", message)

    def begin(self, snapshot: Sequence[Turn]) -> StreamHandle:
        """Submit the conversation context and return immediately.

        Must be called from a running event loop.

        Args:
            snapshot: Turns to send as context, in order

        Returns:
            Handle for the new stream
        """
        if self._sink is None:
            raise RuntimeError("No sink registered for stream events")

        handle = StreamHandle()
        messages = to_chat_messages(snapshot)
        task = asyncio.get_running_loop().create_task(
            self._drain(handle, messages), name=f"brief-stream-{handle.id[:8]}"
        )
        self._tasks[handle.id] = task
        self._handles[handle.id] = handle
        task.add_done_callback(lambda t, stream_id=handle.id: self._forget(stream_id, t))
        self._debug("info", f"Stream {handle.id[:8]} started ({len(messages)} messages, model {self.model})")
        return handle

    def cancel(self, handle: StreamHandle) -> None:
        """Request early termination of a stream (best effort)."""
        if not handle.is_active:
            return
        handle.state = StreamState.CANCELLED
        task = self._tasks.get(handle.id)
        if task is not None and not task.done():
            task.cancel()
        self._debug("info", f"Stream {handle.id[:8]} cancel requested")

    @property
    def active_streams(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def aclose(self) -> None:
        """Cancel every running stream and wait for the tasks to unwind."""
        for handle in list(self._handles.values()):
            self.cancel(handle)
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, stream_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(stream_id, None)
        handle = self._handles.pop(stream_id, None)
        # A task cancelled before its first step never ran _drain
        if task.cancelled() and handle is not None and stream_id not in self._ended:
            self._end(handle, StreamState.CANCELLED)
        self._ended.discard(stream_id)

    def _emit(self, event: StreamEvent) -> None:
        assert self._sink is not None
        self._sink(event)

    def _end(self, handle: StreamHandle, state: StreamState, cause: str | None = None) -> None:
        if handle.state == StreamState.ACTIVE:
            handle.state = state
            handle.cause = cause
        self._ended.add(handle.id)
        self._emit(StreamEnded(stream_id=handle.id, state=state, cause=cause))

    async def _drain(self, handle: StreamHandle, messages: list[ChatMessage]) -> None:
        """Pull deltas from the provider and forward them as fragments."""
        buffer = ReorderBuffer()
        arrival = 0
        try:
            async with asyncio.timeout(self._request_timeout):
                stream = await self._llm.chat_completion_stream(
                    messages,
                    model=self._model,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                )
                try:
                    async for delta in stream:
                        if isinstance(delta, tuple):
                            index, text = delta
                        else:
                            index, text = arrival, delta
                        arrival += 1
                        for sequence, ready in buffer.push(index, text):
                            self._emit(Fragment(stream_id=handle.id, sequence=sequence, text=ready))
                finally:
                    await stream.aclose()
        except asyncio.CancelledError:
            self._end(handle, StreamState.CANCELLED)
            raise
        except TimeoutError:
            cause = str(StreamTimeoutError(self._request_timeout or 0))
            self._debug("warning", f"Stream {handle.id[:8]} {cause}")
            self._end(handle, StreamState.ERRORED, cause)
            return
        except Exception as e:
            cause = describe_error(e)
            self._debug("error", f"Stream {handle.id[:8]} failed: {cause}")
            self._end(handle, StreamState.ERRORED, cause)
            return

        if buffer.pending:
            cause = f"malformed stream: {buffer.pending} fragment(s) missing before sequence end"
            self._debug("error", f"Stream {handle.id[:8]} {cause}")
            self._end(handle, StreamState.ERRORED, cause)
            return

        finish_reason = stream.finish_reason or "stop"
        if finish_reason in ERROR_FINISH_REASONS:
            self._end(handle, StreamState.ERRORED, f"model finished with reason '{finish_reason}'")
            return

        handle.state = StreamState.FINISHED
        self._ended.add(handle.id)
        self._emit(Fragment(
            stream_id=handle.id,
            sequence=buffer.next_sequence,
            text="",
            is_final=True,
            finish_reason=finish_reason,
            usage=stream.usage,
        ))
        self._debug("info", f"Stream {handle.id[:8]} finished ({finish_reason}, {buffer.next_sequence} fragments)")
