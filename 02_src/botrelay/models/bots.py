"""Bot-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class BotStatus(str, Enum):
    """Bot lifecycle status."""

    ACTIVE = "active"
    DISABLED = "disabled"


class BotType(str, Enum):
    """Standard bots belong to users; system bots are built in."""

    STANDARD = "standard"
    SYSTEM = "system"


@dataclass
class WebhookConfig:
    """Push delivery configuration of a bot."""

    url: str | None = None
    secret: str | None = None
    enabled: bool = False
    allowed_updates: list[str] | None = None  # None means every update type
    max_connections: int = 40

    def accepts(self, update_type: str) -> bool:
        """Whether the allowed-update filter lets this update type through."""
        if not self.allowed_updates:
            return True
        return update_type in self.allowed_updates


@dataclass
class Bot:
    """A bot account."""

    bot_id: str
    owner_id: int
    bot_token: str
    username: str
    display_name: str
    description: str = ""
    about: str = ""
    category: str = "general"
    bot_type: BotType = BotType.STANDARD
    status: BotStatus = BotStatus.ACTIVE
    is_public: bool = True
    can_join_groups: bool = True
    messages_sent: int = 0
    messages_received: int = 0
    total_users: int = 0
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == BotStatus.ACTIVE

    def to_public_dict(self, include_token: bool = False) -> dict:
        """Serialize for API responses; the token is only shown to owners."""
        data = {
            "bot_id": self.bot_id,
            "owner_id": self.owner_id,
            "username": self.username,
            "display_name": self.display_name,
            "description": self.description,
            "about": self.about,
            "category": self.category,
            "bot_type": self.bot_type.value,
            "status": self.status.value,
            "is_public": self.is_public,
            "can_join_groups": self.can_join_groups,
            "messages_sent": self.messages_sent,
            "messages_received": self.messages_received,
            "total_users": self.total_users,
            "webhook_url": self.webhook.url,
            "webhook_enabled": self.webhook.enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_token:
            data["bot_token"] = self.bot_token
        return data


@dataclass
class BotCommand:
    """A slash command advertised by a bot."""

    command: str
    description: str
    usage_hint: str = ""
    scope: str = "all"
    is_hidden: bool = False
    sort_order: int = 0
