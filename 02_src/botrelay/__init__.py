"""Bot relay: bot update distribution and webhook delivery."""

from .app import Application, IApplication
from .errors import (
    AuthError,
    BotRelayError,
    DeliveryFailure,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from .models import Bot, BotCommand, DeliveryRecord, Update, User, WebhookConfig

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Errors
    "AuthError",
    "BotRelayError",
    "DeliveryFailure",
    "InternalError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "ValidationError",
    # Models
    "Bot",
    "BotCommand",
    "DeliveryRecord",
    "Update",
    "User",
    "WebhookConfig",
]
