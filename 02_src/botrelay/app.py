"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .bots import BotService
from .config import env_bool, resolve_db_path
from .conversation import IConversationStateStore, ManagerBot, create_state_store
from .fanout import FanoutBroadcaster, IRealtimeTransport, InMemoryTransport
from .logging_config import get_logger
from .polling import LongPollDispatcher
from .storage import IStorage, Storage
from .updates import IUpdateLog, UpdateLog
from .webhooks import StorageLease, WebhookDeliveryEngine

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...

    @property
    def storage(self) -> IStorage: ...

    @property
    def bot_service(self) -> BotService: ...

    @property
    def dispatcher(self) -> LongPollDispatcher: ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        run_webhooks: bool | None = None,
        state_store: str | None = None,
        transport: IRealtimeTransport | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._run_webhooks = (
            run_webhooks if run_webhooks is not None
            else env_bool("WEBHOOK_ENGINE_ENABLED", True)
        )
        self._state_store_kind = state_store or os.getenv("STATE_STORE", "memory")
        self._transport = transport

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._update_log: IUpdateLog | None = None
        self._broadcaster: FanoutBroadcaster | None = None
        self._bot_service: BotService | None = None
        self._state_store: IConversationStateStore | None = None
        self._dispatcher: LongPollDispatcher | None = None
        self._manager_bot: ManagerBot | None = None
        self._webhook_engine: WebhookDeliveryEngine | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Update log (depends on Storage)
        self._update_log = UpdateLog(self._storage)

        # 3. Fan-out (real-time transport)
        if self._transport is None:
            self._transport = InMemoryTransport()
        self._broadcaster = FanoutBroadcaster(self._transport)

        # 4. Bot service (depends on Storage, UpdateLog, Fan-out)
        self._bot_service = BotService(self._storage, self._update_log, self._broadcaster)

        # 5. Conversation state and long polling
        self._state_store = create_state_store(self._state_store_kind, self._storage)
        self._dispatcher = LongPollDispatcher(self._update_log, self._storage)
        logger.info(f"State store: {self._state_store_kind}")

        # 6. Built-in manager bot (depends on everything above)
        self._manager_bot = ManagerBot(
            storage=self._storage,
            update_log=self._update_log,
            bot_service=self._bot_service,
            broadcaster=self._broadcaster,
            state_store=self._state_store,
        )
        await self._manager_bot.ensure_registered()

        # 7. Webhook delivery engine
        lease = StorageLease(self._storage) if env_bool("WEBHOOK_SCAN_LEASE") else None
        self._webhook_engine = WebhookDeliveryEngine(self._update_log, self._storage, lease=lease)
        if self._run_webhooks:
            await self._webhook_engine.start()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._webhook_engine:
            await self._webhook_engine.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        # 1. Pause delivery
        running = self._webhook_engine is not None and self._webhook_engine.is_running
        if running:
            await self._webhook_engine.stop()

        # 2. Clear storage and conversation state
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        if self._state_store:
            await self._state_store.clear()

        # 3. Seed the manager bot again
        if self._manager_bot:
            await self._manager_bot.ensure_registered()

        # 4. Resume delivery
        if running:
            await self._webhook_engine.start()
        logger.info("Reset complete")

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def update_log(self) -> IUpdateLog:
        if not self._update_log:
            raise RuntimeError("Application not started")
        return self._update_log

    @property
    def transport(self) -> IRealtimeTransport:
        if not self._transport:
            raise RuntimeError("Application not started")
        return self._transport

    @property
    def bot_service(self) -> BotService:
        """Get bot service instance."""
        if not self._bot_service:
            raise RuntimeError("Application not started")
        return self._bot_service

    @property
    def dispatcher(self) -> LongPollDispatcher:
        if not self._dispatcher:
            raise RuntimeError("Application not started")
        return self._dispatcher

    @property
    def state_store(self) -> IConversationStateStore:
        if not self._state_store:
            raise RuntimeError("Application not started")
        return self._state_store

    @property
    def manager_bot(self) -> ManagerBot:
        """Get the built-in manager bot."""
        if not self._manager_bot:
            raise RuntimeError("Application not started")
        return self._manager_bot

    @property
    def webhook_engine(self) -> WebhookDeliveryEngine:
        if not self._webhook_engine:
            raise RuntimeError("Application not started")
        return self._webhook_engine
