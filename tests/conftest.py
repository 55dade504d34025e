"""Pytest configuration and shared fixtures."""
import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from brief.config import PRIORITY_ENV, SETTING_SOURCES, ConfigStore
from brief.llm import ChatMessage, LLMProvider, StreamingResponse
from brief.streaming import StreamHandle, StreamState
from brief.transcript import Turn


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


class FakeProvider(LLMProvider):
    """Scripted provider: yields the given deltas, then optionally fails or hangs."""

    def __init__(
        self,
        deltas: Sequence[Any] = (),
        *,
        fail_with: Exception | None = None,
        finish_reason: str | None = "stop",
        delay: float = 0.0,
        hang: bool = False,
        model: str = "fake-model",
        usage: dict[str, int] | None = None,
    ) -> None:
        self._deltas = list(deltas)
        self._usage = usage
        self._fail_with = fail_with
        self._finish_reason = finish_reason
        self._delay = delay
        self._hang = hang
        self._model = model
        self.calls: list[dict[str, Any]] = []
        self.closed = False
        self.generator_closed = False

    @property
    def model(self) -> str:
        return self._model

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        self.calls.append({
            "messages": list(messages),
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        response = StreamingResponse()
        return response.bind(self._generate(response))

    async def _generate(self, response: StreamingResponse):
        try:
            for delta in self._deltas:
                if self._delay:
                    await asyncio.sleep(self._delay)
                yield delta
            if self._hang:
                await asyncio.Event().wait()
            if self._fail_with is not None:
                raise self._fail_with
            response.set_finish_reason(self._finish_reason)
            if self._usage is not None:
                response.set_usage(self._usage)
        finally:
            self.generator_closed = True

    async def close(self) -> None:
        self.closed = True


class RecordingSurface:
    """Render surface that records what the controller asks of it."""

    def __init__(self) -> None:
        self.draws: list[tuple[list[Turn], str]] = []
        self.notices: list[tuple[str, str]] = []
        self.exit_calls = 0

    def draw(self, snapshot: Sequence[Turn], partial_text: str) -> None:
        self.draws.append((list(snapshot), partial_text))

    def notify(self, message: str, *, severity: str = "information") -> None:
        self.notices.append((message, severity))

    def exit(self) -> None:
        self.exit_calls += 1

    @property
    def exited(self) -> bool:
        return self.exit_calls > 0

    @property
    def last_snapshot(self) -> list[Turn]:
        return self.draws[-1][0]

    def severities(self, severity: str) -> list[str]:
        return [message for message, level in self.notices if level == severity]


class FakeAdapter:
    """Stream adapter stand-in: records begin/cancel, never touches the network."""

    def __init__(self, model: str = "fake-model", fail_begin: Exception | None = None) -> None:
        self._model = model
        self._fail_begin = fail_begin
        self.sink = None
        self.debug_callback = None
        self.contexts: list[list[Turn]] = []
        self.handles: list[StreamHandle] = []
        self.cancelled: list[StreamHandle] = []
        self.closed = False

    @property
    def model(self) -> str:
        return self._model

    @model.setter
    def model(self, value: str | None) -> None:
        self._model = value or "fake-model"

    def set_sink(self, sink) -> None:
        self.sink = sink

    def set_debug_callback(self, callback) -> None:
        self.debug_callback = callback

    def begin(self, snapshot: Sequence[Turn]) -> StreamHandle:
        if self._fail_begin is not None:
            raise self._fail_begin
        handle = StreamHandle()
        self.contexts.append(list(snapshot))
        self.handles.append(handle)
        return handle

    def cancel(self, handle: StreamHandle) -> None:
        if handle.is_active:
            handle.state = StreamState.CANCELLED
            self.cancelled.append(handle)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def surface():
    """Recording render surface."""
    return RecordingSurface()


@pytest.fixture
def fake_adapter():
    """Fake stream adapter."""
    return FakeAdapter()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the developer's environment and config file."""
    for env_var, _ in SETTING_SOURCES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv(PRIORITY_ENV, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def config_store(clean_env):
    """Config store backed by a file in a temporary directory."""
    return ConfigStore(clean_env / "brief" / "config.yaml")
