"""Tests for UpdateLog."""

import asyncio

import pytest

from botrelay.models import DeliveryOutcome, Direction
from botrelay.updates import build_envelope, canonical_json

from conftest import OWNER_ID, inbound


class TestUpdateLogClaim:
    """Tests for claim-on-read."""

    @pytest.mark.asyncio
    async def test_claim_exact_set(self, update_log):
        ids = [await update_log.append(inbound("bot_a", text=f"m{i}")) for i in range(6)]

        claimed = await update_log.claim_unprocessed("bot_a", Direction.INBOUND, 10, since_id=ids[1])
        assert [u.id for u in claimed] == ids[2:]

    @pytest.mark.asyncio
    async def test_zero_limit_claims_nothing(self, update_log):
        await update_log.append(inbound("bot_a"))
        assert await update_log.claim_unprocessed("bot_a", Direction.INBOUND, 0) == []
        assert await update_log.pending_count("bot_a") == 1

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_overlap(self, update_log):
        for i in range(40):
            await update_log.append(inbound("bot_a", text=f"m{i}"))

        results = await asyncio.gather(
            *[update_log.claim_unprocessed("bot_a", Direction.INBOUND, 7) for _ in range(8)]
        )

        claimed_ids = [u.id for batch in results for u in batch]
        assert len(claimed_ids) == 40
        assert len(set(claimed_ids)) == 40
        for batch in results:
            assert [u.id for u in batch] == sorted(u.id for u in batch)

    @pytest.mark.asyncio
    async def test_claim_one(self, update_log):
        update_id = await update_log.append(inbound("bot_a"))
        assert await update_log.claim_one("bot_a", update_id)
        assert not await update_log.claim_one("bot_a", update_id)
        assert await update_log.pending_count("bot_a") == 0


class TestUpdateLogDeliveryRecords:
    """mark_* write records and leave the processed flag alone."""

    @pytest.mark.asyncio
    async def test_mark_delivered_and_failed(self, update_log, storage):
        update = inbound("bot_a")
        await update_log.append(update)

        delivered = await update_log.mark_delivered(update, "{}", "https://x", 200, "ok")
        failed = await update_log.mark_failed(update, "{}", "https://x", 0, "timeout", attempts=3)

        assert delivered.outcome == DeliveryOutcome.DELIVERED
        assert delivered.delivered_at is not None
        assert failed.outcome == DeliveryOutcome.FAILED
        assert failed.delivered_at is None
        assert failed.attempts == 3

        # Still pending: only claims flip the flag
        assert await update_log.pending_count("bot_a") == 1
        assert len(await storage.get_delivery_records("bot_a")) == 2

    @pytest.mark.asyncio
    async def test_mark_skipped(self, update_log):
        update = inbound("bot_a", text="/start")
        await update_log.append(update)

        record = await update_log.mark_skipped(update, "https://x")
        assert record.outcome == DeliveryOutcome.SKIPPED
        assert record.event_type == "command"
        assert record.attempts == 0


class TestUpdateLogSignal:
    """Tests for the append wake-up signal."""

    @pytest.mark.asyncio
    async def test_wait_times_out(self, update_log):
        assert await update_log.wait_for_append("bot_a", 0.05) is False
        assert await update_log.wait_for_append("bot_a", 0) is False

    @pytest.mark.asyncio
    async def test_inbound_append_wakes_waiter(self, update_log):
        waiter = asyncio.create_task(update_log.wait_for_append("bot_a", 5))
        await asyncio.sleep(0)
        await update_log.append(inbound("bot_a"))
        assert await asyncio.wait_for(waiter, 1) is True

    @pytest.mark.asyncio
    async def test_other_bot_does_not_wake_waiter(self, update_log):
        waiter = asyncio.create_task(update_log.wait_for_append("bot_a", 0.1))
        await asyncio.sleep(0)
        await update_log.append(inbound("bot_b"))
        assert await waiter is False


class TestEnvelope:
    """Tests for envelope building."""

    @pytest.mark.asyncio
    async def test_message_envelope_with_sender(self, update_log, storage):
        update = inbound("bot_a", text="hello")
        await update_log.append(update)
        user = await storage.get_user(OWNER_ID)

        envelope = build_envelope(update, user, include_bot_id=True)

        assert envelope["update_id"] == update.id
        assert envelope["update_type"] == "message"
        assert envelope["bot_id"] == "bot_a"
        assert envelope["message"]["from"]["username"] == "alice"
        assert envelope["message"]["chat"] == {"id": str(OWNER_ID), "type": "private"}
        assert envelope["message"]["text"] == "hello"
        assert "command" not in envelope
        assert "callback_query" not in envelope

    def test_command_and_callback_sections(self):
        command = inbound("bot_a", text="/ask weather", id=5)
        envelope = build_envelope(command)
        assert envelope["command"] == {"name": "ask", "args": "weather"}
        assert "bot_id" not in envelope
        assert envelope["message"]["from"] == {"id": OWNER_ID}

        callback = inbound("bot_a", text=None, id=6, callback_data="cmd_help")
        envelope = build_envelope(callback)
        assert envelope["update_type"] == "callback_query"
        assert envelope["callback_query"]["data"] == "cmd_help"
        assert envelope["callback_query"]["id"] == "6"

    def test_canonical_json_is_key_order_independent(self):
        assert canonical_json({"b": 1, "a": "é"}) == canonical_json({"a": "é", "b": 1})
        assert canonical_json({"a": 1}) == b'{"a":1}'
