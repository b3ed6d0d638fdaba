"""Fan-out of persisted bot traffic to real-time subscribers."""

import time
from typing import Any, Protocol

from ..logging_config import get_logger
from ..models import Update
from .transport import IRealtimeTransport

logger = get_logger(__name__)

EVENT_MESSAGE = "bot_message"
EVENT_MESSAGE_EDIT = "bot_message_edit"
EVENT_MESSAGE_DELETE = "bot_message_delete"
EVENT_CALLBACK_ANSWER = "bot_callback_answer"


def user_room(chat_id: str) -> str:
    return str(chat_id)


def user_bot_room(chat_id: str, bot_id: str) -> str:
    return f"user_bot_{chat_id}_{bot_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class IFanoutBroadcaster(Protocol):
    """Broadcasts after persistence; never rolls back the stored record."""

    async def message(self, update: Update) -> None:
        """Broadcast a persisted outbound message."""
        ...

    async def message_edited(
        self,
        bot_id: str,
        chat_id: str,
        message_id: int,
        text: str | None,
        reply_markup: dict | None,
    ) -> None:
        """Broadcast an edit of an outbound message."""
        ...

    async def message_deleted(self, bot_id: str, chat_id: str, message_id: int) -> None:
        """Broadcast a deletion."""
        ...

    async def callback_answered(
        self,
        bot_id: str,
        chat_id: str,
        callback_query_id: str,
        text: str | None,
        show_alert: bool,
    ) -> None:
        """Tell the pressing user that the callback was acknowledged."""
        ...


class FanoutBroadcaster:
    """Sends to the user's room and the per (user, bot) room."""

    def __init__(self, transport: IRealtimeTransport):
        self._transport = transport

    async def message(self, update: Update) -> None:
        """Broadcast a persisted outbound message."""
        payload = {
            "bot_id": update.bot_id,
            "message_id": update.id,
            "text": update.text,
            "media": update.media.to_dict() if update.media else None,
            "reply_markup": update.reply_markup,
            "timestamp": _now_ms(),
        }
        await self._both(update.chat_id, update.bot_id, EVENT_MESSAGE, payload)

    async def message_edited(
        self,
        bot_id: str,
        chat_id: str,
        message_id: int,
        text: str | None,
        reply_markup: dict | None,
    ) -> None:
        """Broadcast an edit of an outbound message."""
        payload = {
            "bot_id": bot_id,
            "message_id": message_id,
            "text": text,
            "reply_markup": reply_markup,
            "timestamp": _now_ms(),
        }
        await self._both(chat_id, bot_id, EVENT_MESSAGE_EDIT, payload)

    async def message_deleted(self, bot_id: str, chat_id: str, message_id: int) -> None:
        """Broadcast a deletion."""
        payload = {"bot_id": bot_id, "message_id": message_id, "timestamp": _now_ms()}
        await self._both(chat_id, bot_id, EVENT_MESSAGE_DELETE, payload)

    async def callback_answered(
        self,
        bot_id: str,
        chat_id: str,
        callback_query_id: str,
        text: str | None,
        show_alert: bool,
    ) -> None:
        """Tell the pressing user that the callback was acknowledged."""
        payload = {
            "bot_id": bot_id,
            "callback_query_id": callback_query_id,
            "text": text,
            "show_alert": show_alert,
        }
        await self._transport.emit(user_room(chat_id), EVENT_CALLBACK_ANSWER, payload)

    async def _both(self, chat_id: str, bot_id: str, event: str, payload: dict[str, Any]) -> None:
        await self._transport.emit(user_room(chat_id), event, payload)
        await self._transport.emit(user_bot_room(chat_id, bot_id), event, payload)
        logger.debug("Broadcast %s for %s to %s", event, bot_id, chat_id)
