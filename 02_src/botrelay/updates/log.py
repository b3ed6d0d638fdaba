"""Update log: durable per-bot queue of inbound and outbound traffic."""

import asyncio
from datetime import datetime, timezone
from typing import Protocol

from ..logging_config import get_logger
from ..models import DeliveryOutcome, DeliveryRecord, Direction, Update
from ..storage import IStorage

logger = get_logger(__name__)


class IUpdateLog(Protocol):
    """Append-only update store with atomic claim-on-read."""

    async def append(self, update: Update) -> int:
        """Persist an update, returning its strictly increasing ID."""
        ...

    async def claim_unprocessed(
        self,
        bot_id: str,
        direction: Direction,
        limit: int,
        since_id: int = 0,
    ) -> list[Update]:
        """Select and mark processed in one step; ascending ID order."""
        ...

    async def claim_one(self, bot_id: str, update_id: int) -> bool:
        """Claim a single known update."""
        ...

    async def pending_count(self, bot_id: str, direction: Direction = Direction.INBOUND) -> int:
        """Number of unclaimed updates."""
        ...

    async def mark_delivered(
        self,
        update: Update,
        payload: str,
        webhook_url: str,
        response_code: int,
        response_body: str,
        attempts: int = 1,
    ) -> DeliveryRecord:
        """Record a successful webhook push."""
        ...

    async def mark_failed(
        self,
        update: Update,
        payload: str,
        webhook_url: str,
        response_code: int,
        response_body: str,
        attempts: int = 1,
    ) -> DeliveryRecord:
        """Record a failed webhook push."""
        ...

    async def mark_skipped(self, update: Update, webhook_url: str) -> DeliveryRecord:
        """Record an update consumed but excluded by the allowed-updates filter."""
        ...

    async def wait_for_append(self, bot_id: str, timeout: float) -> bool:
        """Wait until an inbound update is appended for the bot or the timeout passes."""
        ...


class UpdateLog:
    """Update log backed by Storage.

    Delivery outcomes are separate facts from the processed flag: the
    mark_* methods only append delivery records.
    """

    def __init__(self, storage: IStorage):
        self._storage = storage
        # bot_id -> event set (and replaced) on the next inbound append
        self._signals: dict[str, asyncio.Event] = {}

    async def append(self, update: Update) -> int:
        """Persist an update, returning its strictly increasing ID."""
        update_id = await self._storage.append_update(update)
        if update.direction == Direction.INBOUND and not update.processed:
            self._notify(update.bot_id)
        return update_id

    async def claim_unprocessed(
        self,
        bot_id: str,
        direction: Direction,
        limit: int,
        since_id: int = 0,
    ) -> list[Update]:
        """Select and mark processed in one step; ascending ID order."""
        if limit <= 0:
            return []
        updates = await self._storage.claim_updates(bot_id, direction, limit, since_id)
        if updates:
            logger.debug(
                "Claimed %d %s updates for %s (ids %d..%d)",
                len(updates),
                direction.value,
                bot_id,
                updates[0].id,
                updates[-1].id,
            )
        return updates

    async def claim_one(self, bot_id: str, update_id: int) -> bool:
        """Claim a single known update."""
        return await self._storage.claim_update(bot_id, update_id)

    async def pending_count(self, bot_id: str, direction: Direction = Direction.INBOUND) -> int:
        """Number of unclaimed updates."""
        return await self._storage.count_pending(bot_id, direction)

    async def mark_delivered(
        self,
        update: Update,
        payload: str,
        webhook_url: str,
        response_code: int,
        response_body: str,
        attempts: int = 1,
    ) -> DeliveryRecord:
        """Record a successful webhook push."""
        now = datetime.now(timezone.utc)
        return await self._record(
            update,
            DeliveryOutcome.DELIVERED,
            payload,
            webhook_url,
            response_code,
            response_body,
            attempts,
            delivered_at=now,
        )

    async def mark_failed(
        self,
        update: Update,
        payload: str,
        webhook_url: str,
        response_code: int,
        response_body: str,
        attempts: int = 1,
    ) -> DeliveryRecord:
        """Record a failed webhook push."""
        return await self._record(
            update,
            DeliveryOutcome.FAILED,
            payload,
            webhook_url,
            response_code,
            response_body,
            attempts,
        )

    async def mark_skipped(self, update: Update, webhook_url: str) -> DeliveryRecord:
        """Record an update consumed but excluded by the allowed-updates filter."""
        return await self._record(
            update,
            DeliveryOutcome.SKIPPED,
            "",
            webhook_url,
            0,
            "filtered by allowed_updates",
            0,
        )

    async def _record(
        self,
        update: Update,
        outcome: DeliveryOutcome,
        payload: str,
        webhook_url: str,
        response_code: int,
        response_body: str,
        attempts: int,
        delivered_at: datetime | None = None,
    ) -> DeliveryRecord:
        record = DeliveryRecord(
            id=None,
            bot_id=update.bot_id,
            update_id=update.id,
            event_type=update.update_type,
            payload=payload,
            webhook_url=webhook_url,
            response_code=response_code,
            response_body=response_body,
            outcome=outcome,
            attempts=attempts,
            delivered_at=delivered_at,
            created_at=datetime.now(timezone.utc),
        )
        await self._storage.save_delivery_record(record)
        return record

    async def wait_for_append(self, bot_id: str, timeout: float) -> bool:
        """Wait until an inbound update is appended for the bot or the timeout passes.

        Returns True when woken by an append. Appends from other processes are
        not signalled; callers re-poll after the timeout regardless.
        """
        if timeout <= 0:
            return False
        event = self._signals.setdefault(bot_id, asyncio.Event())
        try:
            await asyncio.wait_for(event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def _notify(self, bot_id: str) -> None:
        event = self._signals.pop(bot_id, None)
        if event is not None:
            event.set()
