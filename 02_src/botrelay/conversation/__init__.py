"""Conversational engine and the built-in manager bot."""

from .engine import ANY_COMMAND, Context, ConversationEngine, Handler, Reply
from .handlers import MANAGER_BOT_ID, ManagerBot, parse_command_lines, parse_edit_field
from .keyboard import button, inline_keyboard
from .knowledge import KnowledgeBase, best_match, tokenize
from .state_store import (
    DurableStateStore,
    IConversationStateStore,
    ShardedStateStore,
    create_state_store,
)
from .states import ManagerState

__all__ = [
    "ANY_COMMAND",
    "Context",
    "ConversationEngine",
    "Handler",
    "Reply",
    "MANAGER_BOT_ID",
    "ManagerBot",
    "parse_command_lines",
    "parse_edit_field",
    "button",
    "inline_keyboard",
    "KnowledgeBase",
    "best_match",
    "tokenize",
    "DurableStateStore",
    "IConversationStateStore",
    "ShardedStateStore",
    "create_state_store",
    "ManagerState",
]
