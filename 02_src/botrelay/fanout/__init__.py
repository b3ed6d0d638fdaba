"""Real-time fan-out module."""

from .broadcaster import (
    EVENT_CALLBACK_ANSWER,
    EVENT_MESSAGE,
    EVENT_MESSAGE_DELETE,
    EVENT_MESSAGE_EDIT,
    FanoutBroadcaster,
    IFanoutBroadcaster,
    user_bot_room,
    user_room,
)
from .transport import IRealtimeTransport, InMemoryTransport, RoomHandler

__all__ = [
    "EVENT_CALLBACK_ANSWER",
    "EVENT_MESSAGE",
    "EVENT_MESSAGE_DELETE",
    "EVENT_MESSAGE_EDIT",
    "FanoutBroadcaster",
    "IFanoutBroadcaster",
    "IRealtimeTransport",
    "InMemoryTransport",
    "RoomHandler",
    "user_bot_room",
    "user_room",
]
