"""Conversation state models."""

from dataclasses import dataclass, field
from enum import Enum

IDLE = "idle"


def state_tag(state: str | Enum) -> str:
    """Plain string tag for a state given as str or Enum member."""
    if isinstance(state, Enum):
        return str(state.value)
    return state


@dataclass
class ConversationState:
    """Per (bot, user) register driving a built-in bot's wizards."""

    bot_id: str
    user_id: int
    state: str = IDLE
    data: dict = field(default_factory=dict)

    @property
    def is_idle(self) -> bool:
        return self.state == IDLE

    def transition(self, state: str | Enum, data: dict | None = None) -> None:
        """Move to a new state, replacing the associated data."""
        self.state = state_tag(state)
        self.data = dict(data) if data else {}

    def reset(self) -> None:
        """Back to idle; partial wizard data is discarded."""
        self.state = IDLE
        self.data = {}
