"""Tests for WebhookDeliveryEngine."""

import asyncio
import json

import httpx
import pytest

from botrelay.models import DeliveryOutcome
from botrelay.polling import LongPollDispatcher
from botrelay.webhooks import (
    BOT_ID_HEADER,
    SIGNATURE_HEADER,
    ExponentialBackoff,
    StorageLease,
    WebhookDeliveryEngine,
    verify_signature,
)

from conftest import inbound

HOOK_URL = "https://receiver.example.com/hook"


class Receiver:
    """httpx.MockTransport handler recording requests."""

    def __init__(self, responses=None):
        self.requests: list[httpx.Request] = []
        self._responses = list(responses or [])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responses:
            response = self._responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return httpx.Response(200, text="ok")


def make_engine(update_log, storage, receiver, **kwargs) -> WebhookDeliveryEngine:
    client = httpx.AsyncClient(transport=httpx.MockTransport(receiver))
    kwargs.setdefault("interval", 0.05)
    kwargs.setdefault("log_skipped", False)
    return WebhookDeliveryEngine(update_log, storage, http_client=client, **kwargs)


@pytest.fixture
async def webhook_bot(bot_service, bot):
    await bot_service.set_webhook(bot, HOOK_URL, secret="hooksecret")
    return bot


class TestWebhookDelivery:
    """Tests for one scan."""

    @pytest.mark.asyncio
    async def test_delivers_signed_envelope(self, update_log, storage, webhook_bot):
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver)
        update_id = await update_log.append(inbound(webhook_bot.bot_id, text="hi"))

        assert await engine.scan_once() == 1

        assert len(receiver.requests) == 1
        request = receiver.requests[0]
        assert str(request.url) == HOOK_URL
        assert request.headers[BOT_ID_HEADER] == webhook_bot.bot_id
        assert verify_signature("hooksecret", request.content, request.headers[SIGNATURE_HEADER])

        body = json.loads(request.content)
        assert body["update_id"] == update_id
        assert body["update_type"] == "message"
        assert body["bot_id"] == webhook_bot.bot_id
        assert body["message"]["text"] == "hi"
        assert body["message"]["from"]["username"] == "alice"

        records = await storage.get_delivery_records(webhook_bot.bot_id)
        assert len(records) == 1
        assert records[0].outcome == DeliveryOutcome.DELIVERED
        assert records[0].response_code == 200
        assert records[0].payload.encode("utf-8") == request.content
        assert await update_log.pending_count(webhook_bot.bot_id) == 0

    @pytest.mark.asyncio
    async def test_ascending_order_and_single_delivery(self, update_log, storage, webhook_bot):
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver)
        ids = [await update_log.append(inbound(webhook_bot.bot_id, text=f"m{i}")) for i in range(3)]

        await engine.scan_once()
        await engine.scan_once()

        assert [json.loads(r.content)["update_id"] for r in receiver.requests] == ids

    @pytest.mark.asyncio
    async def test_non_2xx_recorded_as_failed(self, update_log, storage, webhook_bot):
        receiver = Receiver([httpx.Response(500, text="x" * 2000)])
        engine = make_engine(update_log, storage, receiver)
        await update_log.append(inbound(webhook_bot.bot_id))

        await engine.scan_once()

        record = (await storage.get_delivery_records(webhook_bot.bot_id))[0]
        assert record.outcome == DeliveryOutcome.FAILED
        assert record.response_code == 500
        assert len(record.response_body) == 500
        # Failed updates are not retried on later scans
        await engine.scan_once()
        assert len(receiver.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout_recorded_as_failed(self, update_log, storage, webhook_bot):
        receiver = Receiver([httpx.ReadTimeout("slow")])
        engine = make_engine(update_log, storage, receiver)
        await update_log.append(inbound(webhook_bot.bot_id))

        await engine.scan_once()

        record = (await storage.get_delivery_records(webhook_bot.bot_id))[0]
        assert record.outcome == DeliveryOutcome.FAILED
        assert record.response_code == 0
        assert record.response_body == "timeout"

    @pytest.mark.asyncio
    async def test_connection_error_recorded_as_failed(self, update_log, storage, webhook_bot):
        receiver = Receiver([httpx.ConnectError("refused")])
        engine = make_engine(update_log, storage, receiver)
        await update_log.append(inbound(webhook_bot.bot_id))

        await engine.scan_once()

        record = (await storage.get_delivery_records(webhook_bot.bot_id))[0]
        assert record.outcome == DeliveryOutcome.FAILED
        assert "refused" in record.response_body

    @pytest.mark.asyncio
    async def test_retry_policy(self, update_log, storage, webhook_bot):
        receiver = Receiver([httpx.Response(502), httpx.Response(200)])
        engine = make_engine(
            update_log,
            storage,
            receiver,
            retry_policy=ExponentialBackoff(max_attempts=3, base_delay=0.01),
        )
        await update_log.append(inbound(webhook_bot.bot_id))

        await engine.scan_once()

        record = (await storage.get_delivery_records(webhook_bot.bot_id))[0]
        assert record.outcome == DeliveryOutcome.DELIVERED
        assert record.attempts == 2

    @pytest.mark.asyncio
    async def test_filtered_updates_consumed_silently(
        self, update_log, storage, bot_service, webhook_bot
    ):
        await bot_service.set_webhook(
            webhook_bot, HOOK_URL, secret="hooksecret", allowed_updates=["message"]
        )
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver)
        await update_log.append(inbound(webhook_bot.bot_id, text="/start"))
        await update_log.append(inbound(webhook_bot.bot_id, text="plain"))

        assert await engine.scan_once() == 2

        assert [json.loads(r.content)["message"]["text"] for r in receiver.requests] == ["plain"]
        assert len(await storage.get_delivery_records(webhook_bot.bot_id)) == 1
        assert await update_log.pending_count(webhook_bot.bot_id) == 0

    @pytest.mark.asyncio
    async def test_filtered_updates_logged_when_enabled(
        self, update_log, storage, bot_service, webhook_bot
    ):
        await bot_service.set_webhook(
            webhook_bot, HOOK_URL, secret="hooksecret", allowed_updates=["message"]
        )
        engine = make_engine(update_log, storage, Receiver(), log_skipped=True)
        await update_log.append(inbound(webhook_bot.bot_id, text="/start"))

        await engine.scan_once()

        records = await storage.get_delivery_records(webhook_bot.bot_id)
        assert [r.outcome for r in records] == [DeliveryOutcome.SKIPPED]

    @pytest.mark.asyncio
    async def test_bots_without_webhook_untouched(self, update_log, storage, bot):
        engine = make_engine(update_log, storage, Receiver())
        await update_log.append(inbound(bot.bot_id))

        assert await engine.scan_once() == 0
        assert await update_log.pending_count(bot.bot_id) == 1

    @pytest.mark.asyncio
    async def test_failure_for_one_bot_does_not_stop_others(
        self, update_log, storage, bot_service, webhook_bot
    ):
        from conftest import OWNER_ID

        other = await bot_service.create_bot(OWNER_ID, "other_test_bot", "Other")
        await bot_service.set_webhook(other, "https://other.example.com/hook")
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver)
        await update_log.append(inbound(webhook_bot.bot_id))
        await update_log.append(inbound(other.bot_id))

        original = update_log.claim_unprocessed

        async def flaky_claim(bot_id, *args, **kwargs):
            if bot_id == webhook_bot.bot_id:
                raise RuntimeError("store unavailable")
            return await original(bot_id, *args, **kwargs)

        update_log.claim_unprocessed = flaky_claim

        assert await engine.scan_once() == 1
        assert [r.headers[BOT_ID_HEADER] for r in receiver.requests] == [other.bot_id]


class TestWebhookEngineLifecycle:
    """Tests for start/stop and scan guards."""

    @pytest.mark.asyncio
    async def test_start_once_and_background_delivery(self, update_log, storage, webhook_bot):
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver)

        await engine.start()
        first_task = engine._task
        await engine.start()
        assert engine._task is first_task

        await update_log.append(inbound(webhook_bot.bot_id))
        for _ in range(50):
            if receiver.requests:
                break
            await asyncio.sleep(0.02)
        await engine.stop()

        assert len(receiver.requests) == 1
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_scan_does_not_overlap(self, update_log, storage, webhook_bot):
        gate = asyncio.Event()

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await gate.wait()
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
        engine = WebhookDeliveryEngine(update_log, storage, http_client=client, log_skipped=False)
        await update_log.append(inbound(webhook_bot.bot_id))

        first = asyncio.create_task(engine.scan_once())
        await asyncio.sleep(0.05)
        assert await engine.scan_once() == 0

        gate.set()
        assert await first == 1

    @pytest.mark.asyncio
    async def test_lease_held_elsewhere_skips_scan(self, update_log, storage, webhook_bot):
        await storage.try_acquire_lease("webhook_scan", "other-process", ttl=60)
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver, lease=StorageLease(storage))
        await update_log.append(inbound(webhook_bot.bot_id))

        assert await engine.scan_once() == 0
        assert receiver.requests == []

        await storage.release_lease("webhook_scan", "other-process")
        assert await engine.scan_once() == 1


class TestPollAndWebhookRace:
    """Long poll and webhook scan competing for the same bot."""

    @pytest.mark.asyncio
    async def test_each_update_consumed_once(self, update_log, storage, webhook_bot):
        receiver = Receiver()
        engine = make_engine(update_log, storage, receiver, batch_size=3)
        dispatcher = LongPollDispatcher(update_log, storage, poll_interval=0.05)
        ids = [
            await update_log.append(inbound(webhook_bot.bot_id, text=f"m{i}"))
            for i in range(20)
        ]

        polled: list[int] = []
        pushed = 0

        async def poll_loop():
            for _ in range(10):
                result = await dispatcher.get_updates(webhook_bot, limit=2, timeout=0)
                polled.extend(u["update_id"] for u in result["updates"])

        async def scan_loop():
            nonlocal pushed
            for _ in range(10):
                pushed += await engine.scan_once()

        await asyncio.gather(poll_loop(), scan_loop())

        delivered = [json.loads(r.content)["update_id"] for r in receiver.requests]
        assert len(delivered) == pushed
        assert set(polled).isdisjoint(delivered)
        assert sorted(polled + delivered) == ids
        assert await update_log.pending_count(webhook_bot.bot_id) == 0
