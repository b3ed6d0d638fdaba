"""Long-poll dispatcher serving getUpdates pulls."""

import asyncio
from typing import Any, Protocol

from ..config import (
    LONG_POLL_DEFAULT_LIMIT,
    LONG_POLL_INTERVAL,
    LONG_POLL_MAX_LIMIT,
    LONG_POLL_MAX_TIMEOUT,
    env_float,
)
from ..errors import ValidationError
from ..logging_config import get_logger
from ..models import Bot, Direction, Update, User
from ..storage import IStorage
from ..updates import IUpdateLog, build_envelope

logger = get_logger(__name__)

# Largest id SQLite can store in an INTEGER column
MAX_OFFSET = 2**63 - 1


class ILongPollDispatcher(Protocol):
    """getUpdates over the update log."""

    async def get_updates(
        self,
        bot: Bot,
        offset: Any = None,
        limit: Any = None,
        timeout: Any = None,
    ) -> dict:
        """Claim inbound updates, waiting up to `timeout` seconds when none are pending."""
        ...


def _coerce_int(field: str, value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)


def normalize_poll_params(offset: Any, limit: Any, timeout: Any) -> tuple[int, int, int]:
    """Validate and clamp (offset, limit, timeout).

    Negative values and offsets beyond the id range are rejected; limit above
    100 and timeout above 30 are clamped rather than rejected.
    """
    offset_value = _coerce_int("offset", offset, 0)
    limit_value = _coerce_int("limit", limit, LONG_POLL_DEFAULT_LIMIT)
    timeout_value = _coerce_int("timeout", timeout, 0)

    if offset_value < 0:
        raise ValidationError("offset must be >= 0", field="offset")
    if offset_value > MAX_OFFSET:
        raise ValidationError(f"offset must be <= {MAX_OFFSET}", field="offset")
    if limit_value < 1:
        raise ValidationError("limit must be >= 1", field="limit")
    if timeout_value < 0:
        raise ValidationError("timeout must be >= 0", field="timeout")

    return (
        offset_value,
        min(limit_value, LONG_POLL_MAX_LIMIT),
        min(timeout_value, LONG_POLL_MAX_TIMEOUT),
    )


class LongPollDispatcher:
    """Serves getUpdates with a non-blocking timed wait."""

    def __init__(
        self,
        update_log: IUpdateLog,
        storage: IStorage,
        poll_interval: float | None = None,
    ):
        self._update_log = update_log
        self._storage = storage
        if poll_interval is None:
            poll_interval = env_float("LONG_POLL_INTERVAL", LONG_POLL_INTERVAL)
        self._poll_interval = poll_interval

    async def get_updates(
        self,
        bot: Bot,
        offset: Any = None,
        limit: Any = None,
        timeout: Any = None,
    ) -> dict:
        """Claim inbound updates, waiting up to `timeout` seconds when none are pending.

        Returned updates are already marked processed; a competing consumer
        (another poller or the webhook engine) can never receive them.
        """
        offset, limit, timeout = normalize_poll_params(offset, limit, timeout)
        since_id = offset - 1 if offset > 0 else 0

        updates = await self._update_log.claim_unprocessed(
            bot.bot_id, Direction.INBOUND, limit, since_id
        )

        if not updates and timeout > 0:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            while not updates:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await self._update_log.wait_for_append(
                    bot.bot_id, min(self._poll_interval, remaining)
                )
                updates = await self._update_log.claim_unprocessed(
                    bot.bot_id, Direction.INBOUND, limit, since_id
                )

        envelopes = await self._envelopes(updates)
        if envelopes:
            logger.info(f"Served {len(envelopes)} updates to {bot.bot_id} via long poll")
        return {"updates": envelopes, "count": len(envelopes)}

    async def _envelopes(self, updates: list[Update]) -> list[dict]:
        users: dict[str, User | None] = {}
        result = []
        for update in updates:
            if update.chat_id not in users:
                users[update.chat_id] = await self._lookup_user(update.chat_id)
            result.append(build_envelope(update, users[update.chat_id]))
        return result

    async def _lookup_user(self, chat_id: str) -> User | None:
        if not str(chat_id).isdigit():
            return None
        return await self._storage.get_user(int(chat_id))
