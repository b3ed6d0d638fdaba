"""Webhook delivery engine: periodic scan, signed push, audit log."""

import asyncio
from typing import Protocol

import httpx

from ..config import (
    WEBHOOK_BATCH_SIZE,
    WEBHOOK_RESPONSE_LIMIT,
    WEBHOOK_SCAN_INTERVAL,
    WEBHOOK_TIMEOUT,
    env_bool,
    env_float,
    env_int,
)
from ..errors import DeliveryFailure
from ..logging_config import get_logger
from ..models import Bot, DeliveryRecord, Direction, Update
from ..storage import IStorage
from ..updates import IUpdateLog, build_envelope, canonical_json
from .lease import LocalLease, ScanLease
from .retry import NoRetry, RetryPolicy
from .signing import delivery_headers, sign_payload

logger = get_logger(__name__)


class IWebhookDeliveryEngine(Protocol):
    """Background push of inbound updates to bot webhooks."""

    async def start(self) -> None:
        """Start the periodic scan (no-op when already running)."""
        ...

    async def stop(self) -> None:
        """Stop scanning and release resources."""
        ...

    async def scan_once(self) -> int:
        """Run one scan over all webhook bots; returns updates consumed."""
        ...


class WebhookDeliveryEngine:
    """Scans webhook-enabled bots every `interval` seconds.

    Each update is claimed before it is pushed, so delivery is at most once:
    a crash between claim and POST loses the update rather than repeating it.
    Updates of one bot are delivered sequentially in ascending ID order;
    the bot's max_connections setting is stored but not used for fan-out.
    """

    def __init__(
        self,
        update_log: IUpdateLog,
        storage: IStorage,
        http_client: httpx.AsyncClient | None = None,
        interval: float | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        lease: ScanLease | None = None,
        log_skipped: bool | None = None,
    ):
        self._update_log = update_log
        self._storage = storage
        self._client = http_client
        self._owns_client = http_client is None
        self._interval = (
            interval if interval is not None
            else env_float("WEBHOOK_SCAN_INTERVAL", WEBHOOK_SCAN_INTERVAL)
        )
        self._batch_size = (
            batch_size if batch_size is not None
            else env_int("WEBHOOK_BATCH_SIZE", WEBHOOK_BATCH_SIZE)
        )
        self._timeout = (
            timeout if timeout is not None
            else env_float("WEBHOOK_TIMEOUT", WEBHOOK_TIMEOUT)
        )
        self._retry_policy = retry_policy or NoRetry()
        self._lease = lease or LocalLease()
        self._log_skipped = (
            log_skipped if log_skipped is not None
            else env_bool("WEBHOOK_LOG_SKIPPED")
        )

        self._running = False
        self._task: asyncio.Task | None = None
        self._scan_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic scan (no-op when already running)."""
        if self._running:
            return
        logger.info(
            "Starting webhook delivery engine (interval=%ss, batch=%d)",
            self._interval,
            self._batch_size,
        )
        if self._client is None:
            self._client = httpx.AsyncClient()
        self._running = True
        self._task = asyncio.create_task(self._scan_loop())

    async def stop(self) -> None:
        """Stop scanning and release resources."""
        if not self._running:
            return
        logger.info("Stopping webhook delivery engine")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self._lease.release()

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _scan_loop(self) -> None:
        """Background timer driving the scans."""
        while self._running:
            try:
                await self.scan_once()
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Webhook scan loop error: {e}", exc_info=True)
                await asyncio.sleep(self._interval)

    async def scan_once(self) -> int:
        """Run one scan over all webhook bots; returns updates consumed."""
        if self._scan_lock.locked():
            logger.debug("Previous webhook scan still running, skipping tick")
            return 0

        async with self._scan_lock:
            if not await self._lease.acquire():
                return 0

            consumed = 0
            for bot in await self._storage.list_webhook_bots():
                try:
                    consumed += await self._scan_bot(bot)
                except Exception:
                    # Store failure: abort this bot only
                    logger.exception("Webhook scan failed for bot %s", bot.bot_id)
            return consumed

    async def _scan_bot(self, bot: Bot) -> int:
        updates = await self._update_log.claim_unprocessed(
            bot.bot_id, Direction.INBOUND, self._batch_size
        )
        for update in updates:
            await self.deliver(bot, update)
        return len(updates)

    async def deliver(self, bot: Bot, update: Update) -> DeliveryRecord | None:
        """Push one already-claimed update; returns the audit record, if any."""
        url = bot.webhook.url or ""

        if not bot.webhook.accepts(update.update_type):
            logger.debug(
                "Update %s (%s) filtered out for %s",
                update.id,
                update.update_type,
                bot.bot_id,
            )
            if self._log_skipped:
                return await self._update_log.mark_skipped(update, url)
            return None

        user = None
        if str(update.chat_id).isdigit():
            user = await self._storage.get_user(int(update.chat_id))

        body = canonical_json(build_envelope(update, user, include_bot_id=True))
        payload = body.decode("utf-8")
        headers = delivery_headers(bot.bot_id, sign_payload(bot.webhook.secret or "", body))

        attempt = 0
        while True:
            attempt += 1
            try:
                status_code, response_body = await self._post(url, body, headers)
            except DeliveryFailure as failure:
                delay = self._retry_policy.next_delay(attempt, failure)
                if delay is not None:
                    await asyncio.sleep(delay)
                    continue
                logger.warning(
                    "Webhook delivery failed for bot %s update %s: %s",
                    bot.bot_id,
                    update.id,
                    failure.reason[:100],
                    extra={
                        "context": {
                            "bot_id": bot.bot_id,
                            "update_id": update.id,
                            "response_code": failure.response_code,
                            "attempts": attempt,
                        }
                    },
                )
                return await self._update_log.mark_failed(
                    update,
                    payload,
                    url,
                    failure.response_code,
                    failure.reason,
                    attempt,
                )

            logger.debug("Delivered update %s to %s", update.id, bot.bot_id)
            return await self._update_log.mark_delivered(
                update, payload, url, status_code, response_body, attempt
            )

    async def _post(self, url: str, body: bytes, headers: dict) -> tuple[int, str]:
        if self._client is None:
            raise RuntimeError("WebhookDeliveryEngine not started")
        try:
            response = await self._client.post(
                url,
                content=body,
                headers=headers,
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException:
            raise DeliveryFailure("timeout")
        except httpx.HTTPError as e:
            raise DeliveryFailure(str(e) or type(e).__name__)

        truncated = response.content[:WEBHOOK_RESPONSE_LIMIT].decode("utf-8", errors="replace")
        if not response.is_success:
            raise DeliveryFailure(truncated, response.status_code)
        return response.status_code, truncated
