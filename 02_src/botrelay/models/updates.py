"""Update-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Direction(str, Enum):
    """Traffic direction relative to the bot."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class UpdateKind(str, Enum):
    """Kind of update as seen by bot consumers."""

    MESSAGE = "message"
    COMMAND = "command"
    CALLBACK_QUERY = "callback_query"
    MEDIA = "media"


@dataclass
class Media:
    """Media descriptor attached to an update."""

    type: str
    url: str

    def to_dict(self) -> dict:
        return {"type": self.type, "url": self.url}


@dataclass
class Update:
    """One inbound or outbound bot event."""

    id: int | None
    bot_id: str
    chat_id: str
    chat_type: str = "private"
    direction: Direction = Direction.INBOUND
    text: str | None = None
    media: Media | None = None
    reply_markup: dict | None = None
    command_name: str | None = None
    command_args: str | None = None
    callback_data: str | None = None
    processed: bool = False
    created_at: datetime | None = None
    processed_at: datetime | None = None

    @property
    def is_command(self) -> bool:
        return self.command_name is not None

    @property
    def kind(self) -> UpdateKind:
        """Classify the update.

        Callback presses win over commands, commands over media.
        """
        if self.callback_data:
            return UpdateKind.CALLBACK_QUERY
        if self.is_command:
            return UpdateKind.COMMAND
        if self.media is not None:
            return UpdateKind.MEDIA
        return UpdateKind.MESSAGE

    @property
    def update_type(self) -> str:
        """Envelope update_type; media rides on a plain message envelope."""
        kind = self.kind
        if kind == UpdateKind.MEDIA:
            return UpdateKind.MESSAGE.value
        return kind.value


def parse_command(text: str | None) -> tuple[str, str] | None:
    """Split '/name args' into (name, args); None when text is not a command.

    A '@botname' suffix on the command word is dropped.
    """
    if not text:
        return None
    stripped = text.strip()
    if not stripped.startswith("/") or len(stripped) < 2:
        return None
    if stripped[1].isspace():
        return None
    head, *rest = stripped[1:].split(None, 1)
    name = head.split("@", 1)[0].lower()
    if not name:
        return None
    return name, rest[0].strip() if rest else ""
