"""Real-time transport: pub/sub to subscriber rooms."""

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


RoomHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class IRealtimeTransport(Protocol):
    """Broadcast events to subscriber rooms keyed by recipient."""

    def subscribe(self, room: str, handler: RoomHandler) -> None:
        """Subscribe a handler to a room."""
        ...

    def unsubscribe(self, room: str, handler: RoomHandler) -> None:
        """Remove a handler from a room."""
        ...

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> None:
        """Deliver an event to every subscriber of a room."""
        ...


class InMemoryTransport:
    """In-process pub/sub; events for rooms without subscribers are dropped."""

    def __init__(self):
        self._subscribers: dict[str, list[RoomHandler]] = {}

    def subscribe(self, room: str, handler: RoomHandler) -> None:
        """Subscribe a handler to a room."""
        self._subscribers.setdefault(room, []).append(handler)

    def unsubscribe(self, room: str, handler: RoomHandler) -> None:
        """Remove a handler from a room."""
        handlers = self._subscribers.get(room, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._subscribers.pop(room, None)

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> None:
        """Deliver an event to every subscriber of a room."""
        handlers = list(self._subscribers.get(room, []))
        if not handlers:
            return

        # Call all handlers concurrently
        results = await asyncio.gather(
            *[handler(event, payload) for handler in handlers],
            return_exceptions=True,
        )

        # Log any exceptions
        for i, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error("Error in %s handler %s for room %s: %s", event, i, room, result)
