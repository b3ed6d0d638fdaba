"""Core data models for the bot relay."""

from .bots import Bot, BotCommand, BotStatus, BotType, WebhookConfig
from .conversation import IDLE, ConversationState, state_tag
from .delivery import DeliveryOutcome, DeliveryRecord
from .knowledge import KnowledgeEntry
from .updates import Direction, Media, Update, UpdateKind, parse_command
from .users import User

__all__ = [
    # Bots
    "Bot",
    "BotCommand",
    "BotStatus",
    "BotType",
    "WebhookConfig",
    # Updates
    "Direction",
    "Media",
    "Update",
    "UpdateKind",
    "parse_command",
    # Delivery
    "DeliveryOutcome",
    "DeliveryRecord",
    # Conversation
    "IDLE",
    "ConversationState",
    "state_tag",
    # Knowledge
    "KnowledgeEntry",
    # Users
    "User",
]
