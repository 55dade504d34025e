"""Tests for the Textual render surface."""
import pytest
from conftest import FakeAdapter, wait_until

from brief.session import LineSubmitted, RenderSurface, SessionController, SessionState
from brief.streaming import Fragment
from brief.transcript import Role, Turn, TurnStatus
from brief.ui import BriefApp, ChatHistoryWidget, StatusBar, TurnView
from brief.ui.widgets import turn_note


class TestTurnNote:
    """Tests for turn annotations."""

    def test_failed_shows_cause(self):
        turn = Turn(role=Role.ASSISTANT, status=TurnStatus.FAILED, error="ConnectionError: refused")
        assert turn_note(turn) == "failed: ConnectionError: refused"

    def test_cancelled(self):
        turn = Turn(role=Role.ASSISTANT, content="part", status=TurnStatus.CANCELLED)
        assert turn_note(turn) == "cancelled"

    def test_truncated(self):
        turn = Turn(role=Role.ASSISTANT, content="x", finish_reason="length")
        assert turn_note(turn) == "truncated at the token limit"

    def test_complete_has_no_note(self):
        assert turn_note(Turn.user("hi")) == ""


class TestBriefApp:
    """Tests for BriefApp as a render surface."""

    def test_is_a_render_surface(self):
        """Test that the app satisfies the surface port."""
        controller = SessionController(None, FakeAdapter())
        assert isinstance(BriefApp(controller), RenderSurface)

    @pytest.mark.asyncio
    async def test_draws_streamed_reply(self):
        """Test that a reply appears in the chat history and status line."""
        adapter = FakeAdapter()
        controller = SessionController(None, adapter, system_prompt="Be brief.")
        app = BriefApp(controller)

        async with app.run_test() as pilot:
            await wait_until(lambda: controller.state == SessionState.AWAITING_INPUT)
            controller.post(LineSubmitted("hello"))
            await wait_until(lambda: adapter.handles)
            handle = adapter.handles[-1]
            controller.post(Fragment(stream_id=handle.id, sequence=0, text="Hi"))
            controller.post(Fragment(
                stream_id=handle.id, sequence=1, text="", is_final=True, finish_reason="stop",
                usage={"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
            ))
            await wait_until(lambda: controller.last_usage is not None)
            await pilot.pause()

            chat = app.query_one("#chat-history", ChatHistoryWidget)
            assert chat.get_last_response() == "Hi"
            assert [view.turn.role for view in app.query(TurnView)] == [
                Role.SYSTEM, Role.USER, Role.ASSISTANT,
            ]
            status = app.query_one("#status", StatusBar)
            assert "fake-model" in status.get_plain_text()
            assert "Last: 12 in / 3 out" in status.get_plain_text()

    @pytest.mark.asyncio
    async def test_clear_binding_rebuilds_history(self):
        """Test that Ctrl+K clears the conversation view."""
        adapter = FakeAdapter()
        controller = SessionController(None, adapter)
        app = BriefApp(controller)

        async with app.run_test() as pilot:
            await wait_until(lambda: controller.state == SessionState.AWAITING_INPUT)
            controller.post(LineSubmitted("hello"))
            await wait_until(lambda: len(app.query(TurnView)) == 2)

            await pilot.press("ctrl+k")
            await wait_until(lambda: len(app.query(TurnView)) == 0)

            assert controller.snapshot() == []
            assert adapter.cancelled
