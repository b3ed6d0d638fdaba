"""Scan leases keeping one webhook scanner active across processes."""

import uuid
from typing import Protocol

from ..logging_config import get_logger
from ..storage import IStorage

logger = get_logger(__name__)


class ScanLease(Protocol):
    """Permission to run a scan tick."""

    async def acquire(self) -> bool:
        """Take or renew the lease; False when another holder owns it."""
        ...

    async def release(self) -> None:
        """Give the lease up."""
        ...


class LocalLease:
    """Single-process deployment: always granted."""

    async def acquire(self) -> bool:
        return True

    async def release(self) -> None:
        return None


class StorageLease:
    """Lease row in the shared store, renewed on every tick.

    A holder that stops renewing loses the lease after `ttl` seconds.
    """

    def __init__(
        self,
        storage: IStorage,
        name: str = "webhook_scan",
        ttl: float = 30.0,
        holder: str | None = None,
    ):
        self._storage = storage
        self._name = name
        self._ttl = ttl
        self.holder = holder or uuid.uuid4().hex
        self._held = False

    async def acquire(self) -> bool:
        acquired = await self._storage.try_acquire_lease(self._name, self.holder, self._ttl)
        if acquired != self._held:
            logger.info(
                "Scan lease %s %s by %s",
                self._name,
                "acquired" if acquired else "lost",
                self.holder,
            )
        self._held = acquired
        return acquired

    async def release(self) -> None:
        if self._held:
            await self._storage.release_lease(self._name, self.holder)
            self._held = False
