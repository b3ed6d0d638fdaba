"""Bot management and bot operations module."""

from .service import DEFAULT_COMMANDS, BotService, InternalHandler
from .tokens import (
    generate_bot_id,
    generate_bot_token,
    generate_webhook_secret,
    is_valid_username,
    sanitize,
)

__all__ = [
    "DEFAULT_COMMANDS",
    "BotService",
    "InternalHandler",
    "generate_bot_id",
    "generate_bot_token",
    "generate_webhook_secret",
    "is_valid_username",
    "sanitize",
]
