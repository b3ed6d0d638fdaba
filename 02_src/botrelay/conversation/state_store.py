"""Per (bot, user) conversation state with per-key locking."""

import asyncio
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol

from ..models import IDLE, ConversationState
from ..storage import IStorage

DEFAULT_SHARDS = 64


class IConversationStateStore(Protocol):
    """Keyed state register; a transaction holds the key's lock throughout."""

    def transaction(
        self, bot_id: str, user_id: int
    ) -> AbstractAsyncContextManager[ConversationState]:
        """Async context manager yielding a mutable state, written back on clean exit."""
        ...

    async def get(self, bot_id: str, user_id: int) -> ConversationState:
        """Snapshot of the current state (idle when unknown)."""
        ...

    async def clear(self) -> None:
        """Drop all states."""
        ...


class _ShardedLocks:
    """Fixed pool of asyncio locks; a key always maps to the same lock."""

    def __init__(self, shards: int = DEFAULT_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks = [asyncio.Lock() for _ in range(shards)]

    def lock_for(self, bot_id: str, user_id: int) -> asyncio.Lock:
        return self._locks[hash((bot_id, user_id)) % len(self._locks)]


class ShardedStateStore(_ShardedLocks):
    """In-process store; state is lost on restart."""

    def __init__(self, shards: int = DEFAULT_SHARDS):
        super().__init__(shards)
        self._states: dict[tuple[str, int], tuple[str, dict]] = {}

    @asynccontextmanager
    async def transaction(self, bot_id: str, user_id: int) -> AsyncIterator[ConversationState]:
        async with self.lock_for(bot_id, user_id):
            state = self._load(bot_id, user_id)
            yield state
            self._states[(bot_id, user_id)] = (state.state, dict(state.data))

    async def get(self, bot_id: str, user_id: int) -> ConversationState:
        return self._load(bot_id, user_id)

    async def clear(self) -> None:
        self._states.clear()

    def _load(self, bot_id: str, user_id: int) -> ConversationState:
        tag, data = self._states.get((bot_id, user_id), (IDLE, {}))
        return ConversationState(bot_id=bot_id, user_id=user_id, state=tag, data=dict(data))


class DurableStateStore(_ShardedLocks):
    """State kept in the bot_users table, same shape as setUserState.

    Locks are per process; run one process per bot when using it.
    """

    def __init__(self, storage: IStorage, shards: int = DEFAULT_SHARDS):
        super().__init__(shards)
        self._storage = storage

    @asynccontextmanager
    async def transaction(self, bot_id: str, user_id: int) -> AsyncIterator[ConversationState]:
        async with self.lock_for(bot_id, user_id):
            state = await self.get(bot_id, user_id)
            yield state
            await self._storage.save_bot_user_state(bot_id, user_id, state.state, state.data)

    async def get(self, bot_id: str, user_id: int) -> ConversationState:
        stored = await self._storage.get_bot_user_state(bot_id, user_id)
        tag, data = stored if stored else (None, None)
        return ConversationState(
            bot_id=bot_id,
            user_id=user_id,
            state=tag or IDLE,
            data=data or {},
        )

    async def clear(self) -> None:
        # Rows go away with Storage.clear()
        return None


def create_state_store(kind: str, storage: IStorage) -> IConversationStateStore:
    """'memory' (default) or 'durable'."""
    kind = (kind or "memory").strip().lower()
    if kind == "memory":
        return ShardedStateStore()
    if kind == "durable":
        return DurableStateStore(storage)
    raise ValueError(f"Unknown state store: {kind}")
