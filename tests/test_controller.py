"""Unit tests for the session controller."""
import asyncio

import pytest
from conftest import FakeAdapter, FakeProvider, RecordingSurface, wait_until
from hypothesis import given
from hypothesis import strategies as st

from brief.errors import ConfigError, StaleTurnError
from brief.session import (
    Close,
    ContextWindow,
    KeyPress,
    LineSubmitted,
    Noop,
    Resize,
    SessionController,
    SessionState,
    SurfaceReady,
)
from brief.streaming import CompletionStreamAdapter, Fragment, StreamEnded, StreamHandle, StreamState
from brief.transcript import Role, TurnStatus


def frag(handle: StreamHandle, sequence: int, text: str, final: bool = False, reason: str | None = None):
    return Fragment(
        stream_id=handle.id,
        sequence=sequence,
        text=text,
        is_final=final,
        finish_reason=reason if final else None,
    )


def ready(surface, adapter, **kwargs) -> SessionController:
    controller = SessionController(surface, adapter, **kwargs)
    controller.handle(SurfaceReady())
    return controller


@pytest.fixture
def controller(surface, fake_adapter):
    """Controller with a ready surface and a fake adapter."""
    return ready(surface, fake_adapter)


def streaming_turns(controller) -> list:
    return [turn for turn in controller.snapshot() if turn.status == TurnStatus.STREAMING]


class TestLifecycle:
    """Tests for startup, readiness and shutdown."""

    def test_starts_idle_then_awaits_input(self, surface, fake_adapter):
        """Test that the surface becoming ready opens the session."""
        controller = SessionController(surface, fake_adapter)
        assert controller.state == SessionState.IDLE
        assert fake_adapter.sink == controller.post

        controller.handle(SurfaceReady())

        assert controller.state == SessionState.AWAITING_INPUT
        assert surface.draws

    def test_input_before_ready_is_ignored(self, surface, fake_adapter):
        """Test that nothing is sent before the surface can draw."""
        controller = SessionController(surface, fake_adapter)

        command = controller.submit("hello")

        assert command == Noop("not ready")
        assert controller.snapshot() == []
        assert fake_adapter.handles == []

    def test_quit_exits_once_and_ignores_later_events(self, controller, surface):
        """Test /quit teardown."""
        controller.handle(LineSubmitted("/quit"))
        controller.handle(LineSubmitted("hello"))
        controller.handle(Close())

        assert surface.exit_calls == 1
        assert controller.state == SessionState.IDLE
        assert controller.snapshot() == []

    def test_quit_cancels_active_stream(self, controller, fake_adapter):
        """Test that quitting mid-reply cancels the stream first."""
        controller.handle(LineSubmitted("hello"))
        handle = fake_adapter.handles[-1]

        controller.handle(LineSubmitted("/exit"))

        assert fake_adapter.cancelled == [handle]
        assert controller.snapshot()[-1].status == TurnStatus.CANCELLED

    def test_close_before_ready_exits(self, surface, fake_adapter):
        """Test that the surface can go away before it was ever ready."""
        controller = SessionController(surface, fake_adapter)

        controller.handle(Close())

        assert surface.exited

    def test_resize_redraws(self, controller, surface):
        """Test that a resize triggers a redraw."""
        before = len(surface.draws)
        controller.handle(Resize(100, 40))
        assert len(surface.draws) == before + 1


class TestScenarios:
    """End-to-end conversations against a fake adapter."""

    def test_hello_hi_there(self, controller, fake_adapter):
        """Test a full reply built from two fragments."""
        controller.handle(LineSubmitted("hello"))
        assert controller.state == SessionState.STREAMING
        handle = fake_adapter.handles[-1]

        controller.handle(frag(handle, 0, "Hi"))
        controller.handle(frag(handle, 1, " there", final=True, reason="stop"))

        turns = controller.snapshot()
        assert [(t.role, t.content, t.status) for t in turns] == [
            (Role.USER, "hello", TurnStatus.COMPLETE),
            (Role.ASSISTANT, "Hi there", TurnStatus.COMPLETE),
        ]
        assert turns[1].finish_reason == "stop"
        assert controller.state == SessionState.AWAITING_INPUT
        assert controller.active_handle is None
        assert [t.content for t in fake_adapter.contexts[0]] == ["hello"]

    def test_token_usage_kept_until_clear(self, controller, fake_adapter):
        """Test that provider token counts from the last reply are exposed."""
        usage = {"prompt_tokens": 9, "completion_tokens": 2, "total_tokens": 11}
        controller.handle(LineSubmitted("hello"))
        handle = fake_adapter.handles[-1]

        controller.handle(Fragment(stream_id=handle.id, sequence=0, text="Hi", is_final=True,
                                   finish_reason="stop", usage=usage))

        assert controller.last_usage == usage

        controller.handle(LineSubmitted("/clear"))

        assert controller.last_usage is None

    def test_error_after_zero_fragments(self, controller, fake_adapter, surface):
        """Test that a failed reply does not wedge the session."""
        controller.handle(LineSubmitted("hi"))
        handle = fake_adapter.handles[-1]

        controller.handle(StreamEnded(stream_id=handle.id, state=StreamState.ERRORED, cause="ConnectionError: refused"))

        turns = controller.snapshot()
        assert len(turns) == 2
        assert turns[1].status == TurnStatus.FAILED
        assert turns[1].content == ""
        assert turns[1].error == "ConnectionError: refused"
        assert surface.severities("error")

        controller.handle(LineSubmitted("still there?"))

        assert len(controller.snapshot()) == 4
        assert controller.state == SessionState.STREAMING

    def test_clear_after_five_turns(self, controller, fake_adapter, surface):
        """Test that clear empties the transcript."""
        controller.handle(LineSubmitted("one"))
        controller.handle(frag(fake_adapter.handles[-1], 0, "reply", final=True, reason="stop"))
        controller.handle(LineSubmitted("two"))
        controller.handle(StreamEnded(stream_id=fake_adapter.handles[-1].id, state=StreamState.ERRORED, cause="reset"))
        controller.handle(LineSubmitted("/retry"))
        assert [t.role for t in controller.snapshot()] == [
            Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT, Role.ASSISTANT,
        ]

        controller.handle(LineSubmitted("/clear"))

        assert controller.snapshot() == []
        assert surface.last_snapshot == []
        assert controller.state == SessionState.AWAITING_INPUT
        assert ("Conversation cleared", "information") in surface.notices

    def test_partial_text_is_drawn(self, controller, fake_adapter, surface):
        """Test that the surface sees the reply as it grows."""
        controller.handle(LineSubmitted("hello"))
        handle = fake_adapter.handles[-1]

        controller.handle(frag(handle, 0, "Hel"))
        controller.handle(frag(handle, 1, "lo"))

        assert surface.draws[-1][1] == "Hello"
        assert surface.last_snapshot[-1].status == TurnStatus.STREAMING

    def test_truncated_reply_warns(self, controller, fake_adapter, surface):
        """Test the length finish reason."""
        controller.handle(LineSubmitted("tell me everything"))
        handle = fake_adapter.handles[-1]

        controller.handle(frag(handle, 0, "Once upon", final=True, reason="length"))

        assert controller.snapshot()[-1].finish_reason == "length"
        assert surface.severities("warning")

    def test_begin_failure_fails_the_turn(self, surface):
        """Test a request that cannot even start."""
        adapter = FakeAdapter(fail_begin=RuntimeError("no loop"))
        controller = ready(surface, adapter)

        controller.handle(LineSubmitted("hello"))

        assert controller.snapshot()[-1].status == TurnStatus.FAILED
        assert controller.snapshot()[-1].error == "no loop"
        assert controller.state == SessionState.AWAITING_INPUT
        assert surface.severities("error")


class TestStreams:
    """Tests for fragment handling."""

    @given(st.lists(st.text(max_size=8), min_size=1, max_size=15))
    def test_content_is_ordered_concatenation(self, texts):
        """Property test: content equals the fragments joined in sequence order."""
        adapter = FakeAdapter()
        controller = ready(RecordingSurface(), adapter)
        controller.handle(LineSubmitted("go"))
        handle = adapter.handles[-1]

        for sequence, text in enumerate(texts):
            controller.handle(frag(handle, sequence, text, final=sequence == len(texts) - 1, reason="stop"))

        reply = controller.snapshot()[-1]
        assert reply.content == "".join(texts)
        assert reply.status == TurnStatus.COMPLETE

    def test_foreign_stream_is_ignored(self, controller, fake_adapter):
        """Test that fragments from another stream change nothing."""
        controller.handle(LineSubmitted("hello"))
        controller.handle(frag(fake_adapter.handles[-1], 0, "Hi"))
        before = controller.snapshot()

        controller.handle(frag(StreamHandle(), 1, "intruder"))
        controller.handle(StreamEnded(stream_id=StreamHandle().id, state=StreamState.ERRORED, cause="x"))

        assert controller.snapshot() == before

    def test_duplicate_and_old_sequences_dropped(self, controller, fake_adapter):
        """Test that sequence numbers must increase."""
        controller.handle(LineSubmitted("hello"))
        handle = fake_adapter.handles[-1]

        controller.handle(frag(handle, 0, "a"))
        controller.handle(frag(handle, 0, "a"))
        controller.handle(frag(handle, 1, "b"))

        assert controller.snapshot()[-1].content == "ab"

    def test_cancel_freezes_content(self, controller, fake_adapter):
        """Test that a cancelled reply keeps exactly what had arrived."""
        controller.handle(LineSubmitted("hello"))
        handle = fake_adapter.handles[-1]
        controller.handle(frag(handle, 0, "partial"))

        controller.handle(KeyPress("escape"))
        controller.handle(frag(handle, 1, " more"))
        controller.handle(StreamEnded(stream_id=handle.id, state=StreamState.CANCELLED))

        reply = controller.snapshot()[-1]
        assert reply.status == TurnStatus.CANCELLED
        assert reply.content == "partial"
        assert fake_adapter.cancelled == [handle]
        assert controller.state == SessionState.AWAITING_INPUT

    def test_cancel_command(self, controller, fake_adapter):
        """Test /cancel during a reply."""
        controller.handle(LineSubmitted("hello"))

        controller.handle(LineSubmitted("/cancel"))

        assert controller.snapshot()[-1].status == TurnStatus.CANCELLED

    def test_send_while_streaming_is_refused(self, controller, fake_adapter, surface):
        """Test that a second message waits for the first reply."""
        controller.handle(LineSubmitted("first"))

        controller.handle(LineSubmitted("second"))

        assert len(controller.snapshot()) == 2
        assert len(fake_adapter.handles) == 1
        assert any("still streaming" in message for message, _ in surface.notices)

    @given(st.lists(st.sampled_from(
        ["send", "fragment", "final", "stale", "error", "escape", "clear", "retry"]
    ), max_size=30))
    def test_at_most_one_streaming_turn(self, actions):
        """Property test: any event sequence keeps a single streaming turn."""
        adapter = FakeAdapter()
        controller = ready(RecordingSurface(), adapter)
        sequences: dict[str, int] = {}

        for action in actions:
            handle = adapter.handles[-1] if adapter.handles else None
            if action == "send":
                controller.handle(LineSubmitted("message"))
            elif action in ("fragment", "final") and handle is not None:
                sequence = sequences.get(handle.id, 0)
                sequences[handle.id] = sequence + 1
                controller.handle(frag(handle, sequence, "x", final=action == "final", reason="stop"))
            elif action == "stale" and handle is not None:
                controller.handle(frag(adapter.handles[0], 99, "stale"))
            elif action == "error" and handle is not None:
                controller.handle(StreamEnded(stream_id=handle.id, state=StreamState.ERRORED, cause="boom"))
            elif action == "escape":
                controller.handle(KeyPress("escape"))
            elif action == "clear":
                controller.handle(LineSubmitted("/clear"))
            elif action == "retry":
                controller.handle(LineSubmitted("/retry"))

            assert len(streaming_turns(controller)) <= 1


class TestCommands:
    """Tests for command execution."""

    def test_retry_after_complete_is_noop(self, controller, fake_adapter):
        """Test that a finished reply cannot be retried."""
        controller.handle(LineSubmitted("hello"))
        controller.handle(frag(fake_adapter.handles[-1], 0, "Hi", final=True, reason="stop"))
        before = controller.snapshot()

        command = controller.submit("/retry")

        assert isinstance(command, Noop)
        assert controller.snapshot() == before
        assert len(fake_adapter.handles) == 1

    def test_retry_after_failure(self, controller, fake_adapter):
        """Test that retry asks again without repeating the user turn."""
        controller.handle(LineSubmitted("hi"))
        failed = fake_adapter.handles[-1]
        controller.handle(StreamEnded(stream_id=failed.id, state=StreamState.ERRORED, cause="boom"))

        controller.handle(LineSubmitted("/retry"))

        turns = controller.snapshot()
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT, Role.ASSISTANT]
        assert turns[1].status == TurnStatus.FAILED
        assert turns[2].status == TurnStatus.PENDING
        assert [t.content for t in fake_adapter.contexts[-1]] == ["hi"]
        assert controller.state == SessionState.STREAMING

    def test_new_session(self, controller, fake_adapter, surface):
        """Test /new clears and rotates the session id."""
        session_id = controller.session_id
        controller.handle(LineSubmitted("hello"))

        controller.handle(LineSubmitted("/new"))

        assert controller.snapshot() == []
        assert controller.session_id != session_id
        assert ("New session started", "information") in surface.notices

    def test_model_report(self, controller, surface):
        """Test /model without a name."""
        controller.handle(LineSubmitted("/model"))
        assert ("Model: fake-model", "information") in surface.notices

    def test_model_switch_persists(self, surface, fake_adapter):
        """Test /model <name> switches and saves the choice."""
        saved = []
        controller = ready(surface, fake_adapter, on_model_change=saved.append)

        controller.handle(LineSubmitted("/model gpt-4o"))

        assert controller.model == "gpt-4o"
        assert saved == ["gpt-4o"]
        assert ("Model set to gpt-4o", "information") in surface.notices

    def test_model_save_failure_is_a_warning(self, surface, fake_adapter):
        """Test that an unwritable config does not stop the switch."""
        def fail(name):
            raise ConfigError("read-only")

        controller = ready(surface, fake_adapter, on_model_change=fail)

        controller.handle(LineSubmitted("/model gpt-4o"))

        assert controller.model == "gpt-4o"
        assert surface.severities("warning")

    def test_help(self, controller, surface):
        """Test /help lists commands."""
        controller.handle(LineSubmitted("/help"))
        assert "/clear" in surface.notices[-1][0]

    def test_cancel_when_idle_notifies(self, controller, surface):
        """Test that a misused command is a notice, not an error."""
        controller.handle(LineSubmitted("/cancel"))
        assert surface.notices[-1] == ("nothing to cancel", "information")

    def test_empty_input_is_silent(self, controller, surface):
        """Test that blank lines do nothing visible."""
        controller.handle(LineSubmitted("   "))
        assert surface.notices == []


class TestSystemPrompt:
    """Tests for the seeded system turn."""

    def test_seeded_and_sent(self, surface, fake_adapter):
        """Test that the system prompt leads the transcript and the context."""
        controller = ready(surface, fake_adapter, system_prompt="Be brief.")

        controller.handle(LineSubmitted("hello"))

        assert controller.snapshot()[0].role == Role.SYSTEM
        assert [t.content for t in fake_adapter.contexts[0]] == ["Be brief.", "hello"]

    def test_reseeded_after_clear(self, surface, fake_adapter):
        """Test that clear keeps the system prompt."""
        controller = ready(surface, fake_adapter, system_prompt="Be brief.")
        controller.handle(LineSubmitted("hello"))

        controller.handle(LineSubmitted("/clear"))

        assert [(t.role, t.content) for t in controller.snapshot()] == [(Role.SYSTEM, "Be brief.")]

    def test_context_budget_applied(self, surface, fake_adapter):
        """Test that the context window policy selects what is sent."""
        controller = ready(surface, fake_adapter, context_window=ContextWindow(max_tokens=5))
        controller.handle(LineSubmitted("a" * 40))
        controller.handle(frag(fake_adapter.handles[-1], 0, "b" * 40, final=True, reason="stop"))

        controller.handle(LineSubmitted("short"))

        assert [t.content for t in fake_adapter.contexts[-1]] == ["short"]

    def test_default_context_fits_model_window(self, surface, fake_adapter):
        """Test that history is trimmed to the model window without a configured budget."""
        controller = ready(surface, fake_adapter)
        # 8000 tokens; an unknown model gets an 8192 window, 4096 of it for history
        controller.handle(LineSubmitted("a" * 4 * 8_000))
        controller.handle(frag(fake_adapter.handles[-1], 0, "b" * 40, final=True, reason="stop"))

        controller.handle(LineSubmitted("short"))

        assert [t.content for t in fake_adapter.contexts[-1]] == ["b" * 40, "short"]


class TestRawKeys:
    """Tests for surfaces that deliver individual keys."""

    def test_typing_and_enter(self, controller, fake_adapter):
        """Test composing a line key by key."""
        for key in ["h", "i", "space", "x", "backspace", "!"]:
            controller.handle(KeyPress(key))
        assert controller.pending_input == "hi !"

        controller.handle(KeyPress("enter"))

        assert controller.pending_input == ""
        assert controller.snapshot()[0].content == "hi !"

    def test_ctrl_c_quits(self, controller, surface):
        """Test the quit key."""
        controller.handle(KeyPress("ctrl+c"))
        assert surface.exited

    def test_escape_when_idle_does_nothing(self, controller, fake_adapter):
        """Test that escape without a reply is harmless."""
        controller.handle(KeyPress("escape"))
        assert fake_adapter.cancelled == []
        assert controller.state == SessionState.AWAITING_INPUT


class TestLogging:
    """Tests for the debug callback."""

    def test_callback_propagates_to_adapter(self, controller, fake_adapter):
        """Test that one callback serves controller and adapter."""
        logs = []

        def callback(level, component, message):
            logs.append((level, component))

        controller.set_debug_callback(callback)
        controller.handle(LineSubmitted("hello"))

        assert fake_adapter.debug_callback is callback
        assert ("info", "Session") in logs


class TestRunLoop:
    """Tests for the asynchronous event loop."""

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_adapter(self, surface):
        """Test a reply streamed through the real adapter and inbox."""
        provider = FakeProvider(["Hi", " there"])
        controller = SessionController(surface, CompletionStreamAdapter(provider))
        task = asyncio.create_task(controller.run())

        controller.post(SurfaceReady())
        controller.post(LineSubmitted("hello"))
        await wait_until(
            lambda: len(controller.snapshot()) == 2
            and controller.snapshot()[-1].status == TurnStatus.COMPLETE
        )
        controller.post(Close())
        await task

        assert controller.snapshot()[-1].content == "Hi there"
        assert surface.last_snapshot[-1].content == "Hi there"
        assert surface.exited

    @pytest.mark.asyncio
    async def test_quit_mid_stream_cancels(self, surface):
        """Test that closing during a reply tears the stream down."""
        provider = FakeProvider(["Hi"], hang=True)
        adapter = CompletionStreamAdapter(provider)
        controller = SessionController(surface, adapter)
        task = asyncio.create_task(controller.run())

        controller.post(SurfaceReady())
        controller.post(LineSubmitted("hello"))
        await wait_until(lambda: controller.snapshot() and controller.snapshot()[-1].content == "Hi")
        controller.post(Close())
        await task

        assert controller.snapshot()[-1].status == TurnStatus.CANCELLED
        assert adapter.active_streams == 0
        assert provider.generator_closed

    @pytest.mark.asyncio
    async def test_redraws_are_coalesced(self, surface, fake_adapter):
        """Test that a burst of queued events is drawn once."""
        controller = SessionController(surface, fake_adapter)
        controller.post(SurfaceReady())
        for _ in range(5):
            controller.post(Resize(80, 24))

        task = asyncio.create_task(controller.run())
        await wait_until(lambda: len(surface.draws) >= 1)
        await asyncio.sleep(0.01)

        assert len(surface.draws) == 1

        controller.post(Close())
        await task
        assert fake_adapter.closed

    @pytest.mark.asyncio
    async def test_contract_violation_is_reported_and_survived(self, surface, fake_adapter, monkeypatch):
        """Test that a transcript contract violation does not end the session."""
        controller = SessionController(surface, fake_adapter)
        task = asyncio.create_task(controller.run())
        controller.post(SurfaceReady())
        controller.post(LineSubmitted("hello"))
        await wait_until(lambda: fake_adapter.handles)

        def violate(ref, text):
            raise StaleTurnError("finalized", ref.turn_id)

        monkeypatch.setattr(controller._store, "update_streaming", violate)
        controller.post(frag(fake_adapter.handles[-1], 0, "Hi"))
        await wait_until(lambda: surface.severities("error"))

        assert controller.state == SessionState.AWAITING_INPUT
        assert controller.active_handle is None
        assert controller.snapshot()[-1].status == TurnStatus.FAILED
        # The failed reply is drawn without waiting for another event
        assert surface.last_snapshot[-1].status == TurnStatus.FAILED

        controller.post(Close())
        await task
