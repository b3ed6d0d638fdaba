"""Knowledge base models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class KnowledgeEntry:
    """A keyword -> response pair taught to a built-in bot."""

    id: int | None
    bot_id: str
    keyword: str
    response: str
    user_id: int | None
    created_at: datetime
    updated_at: datetime
