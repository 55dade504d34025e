from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StreamingResponse:
    """Wrapper for streaming LLM responses that captures end-of-stream info.

    Acts as an async iterator for text deltas while storing the finish reason
    and token usage that become available at the end of the stream.

    Usage:
        stream = await provider.chat_completion_stream(messages)
        async for delta in stream:
            print(delta, end="")
        print(stream.finish_reason, stream.usage)
    """

    def __init__(self, async_iter: AsyncIterator[str] | None = None):
        self._iter = async_iter
        self._usage: dict[str, Any] | None = None
        self._finish_reason: str | None = None

    def bind(self, async_iter: AsyncIterator[str]) -> "StreamingResponse":
        """Attach the delta iterator (for generators that report back into this response)."""
        self._iter = async_iter
        return self

    @property
    def usage(self) -> dict[str, Any] | None:
        """Token usage info (available after iteration completes)."""
        return self._usage

    def set_usage(self, usage: dict[str, Any]) -> None:
        self._usage = usage

    @property
    def finish_reason(self) -> str | None:
        """Why the model stopped, e.g. "stop" or "length"."""
        return self._finish_reason

    def set_finish_reason(self, reason: str | None) -> None:
        self._finish_reason = reason

    def __aiter__(self) -> "StreamingResponse":
        return self

    async def __anext__(self) -> str:
        if self._iter is None:
            raise StopAsyncIteration
        return await self._iter.__anext__()

    async def aclose(self) -> None:
        """Close the underlying generator, if it supports it."""
        closer = getattr(self._iter, "aclose", None)
        if closer is not None:
            await closer()


class ChatMessage(BaseModel):
    """Represents a chat message sent to the model."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(description="Role of the message sender: 'user', 'assistant', or 'system'")
    content: str = Field(description="Content of the message")
