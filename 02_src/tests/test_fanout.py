"""Tests for the real-time fan-out."""

import pytest

from botrelay.fanout import (
    EVENT_CALLBACK_ANSWER,
    EVENT_MESSAGE,
    EVENT_MESSAGE_DELETE,
    user_bot_room,
    user_room,
)
from botrelay.models import Direction, Update


class TestInMemoryTransport:
    """Tests for InMemoryTransport."""

    @pytest.mark.asyncio
    async def test_emit_to_subscribers(self, transport):
        calls = []

        async def handler(event, payload):
            calls.append((event, payload))

        transport.subscribe("room1", handler)
        await transport.emit("room1", "ping", {"n": 1})
        await transport.emit("room2", "ping", {"n": 2})

        assert calls == [("ping", {"n": 1})]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, transport):
        calls = []

        async def handler(event, payload):
            calls.append(event)

        transport.subscribe("room1", handler)
        transport.unsubscribe("room1", handler)
        await transport.emit("room1", "ping", {})

        assert calls == []

    @pytest.mark.asyncio
    async def test_handler_error_isolated(self, transport):
        calls = []

        async def failing(event, payload):
            raise RuntimeError("boom")

        async def working(event, payload):
            calls.append(event)

        transport.subscribe("room1", failing)
        transport.subscribe("room1", working)
        await transport.emit("room1", "ping", {})

        assert calls == ["ping"]


class TestFanoutBroadcaster:
    """Tests for FanoutBroadcaster."""

    def test_room_names(self):
        assert user_room("42") == "42"
        assert user_bot_room("42", "bot_x") == "user_bot_42_bot_x"

    @pytest.mark.asyncio
    async def test_message_goes_to_both_rooms(self, broadcaster, recorder):
        user_events = recorder("42")
        pair_events = recorder("user_bot_42_bot_x")
        update = Update(
            id=9, bot_id="bot_x", chat_id="42", direction=Direction.OUTBOUND, text="hi"
        )

        await broadcaster.message(update)

        for events in (user_events, pair_events):
            assert len(events) == 1
            event, payload = events[0]
            assert event == EVENT_MESSAGE
            assert payload["message_id"] == 9
            assert payload["text"] == "hi"

    @pytest.mark.asyncio
    async def test_delete_goes_to_both_rooms(self, broadcaster, recorder):
        user_events = recorder("42")
        pair_events = recorder("user_bot_42_bot_x")

        await broadcaster.message_deleted("bot_x", "42", 3)

        assert user_events[0][0] == EVENT_MESSAGE_DELETE
        assert pair_events[0][1]["message_id"] == 3

    @pytest.mark.asyncio
    async def test_callback_answer_only_to_user(self, broadcaster, recorder):
        user_events = recorder("42")
        pair_events = recorder("user_bot_42_bot_x")

        await broadcaster.callback_answered("bot_x", "42", "17", "done", True)

        assert user_events == [
            (
                EVENT_CALLBACK_ANSWER,
                {"bot_id": "bot_x", "callback_query_id": "17", "text": "done", "show_alert": True},
            )
        ]
        assert pair_events == []
