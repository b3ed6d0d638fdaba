"""Caller identity: bot tokens and user access tokens."""

from collections.abc import Mapping
from typing import Any

from .errors import AuthError
from .models import Bot
from .storage import IStorage

BOT_TOKEN_HEADER = "Bot-Token"
BOT_TOKEN_PARAM = "bot_token"
ACCESS_TOKEN_HEADER = "Access-Token"
ACCESS_TOKEN_PARAM = "access_token"


def extract_bot_token(
    headers: Mapping[str, str],
    query: Mapping[str, str],
    body: Any = None,
) -> str | None:
    """Bot token from the header, then the query string, then a JSON body."""
    token = headers.get(BOT_TOKEN_HEADER) or query.get(BOT_TOKEN_PARAM)
    if not token and isinstance(body, dict):
        token = body.get(BOT_TOKEN_PARAM)
    return str(token) if token else None


def extract_access_token(headers: Mapping[str, str], query: Mapping[str, str]) -> str | None:
    return headers.get(ACCESS_TOKEN_HEADER) or query.get(ACCESS_TOKEN_PARAM) or None


async def authenticate_bot(storage: IStorage, token: str | None) -> Bot:
    """Active bot owning `token`; disabled bots cannot authenticate."""
    if not token:
        raise AuthError("Bot token required")
    bot = await storage.get_bot_by_token(token)
    if bot is None or not bot.is_active:
        raise AuthError("Invalid bot token")
    return bot


async def authenticate_user(storage: IStorage, access_token: str | None) -> int:
    """User ID behind an access token."""
    if not access_token:
        raise AuthError("Access token required")
    user_id = await storage.get_session_user(access_token)
    if user_id is None:
        raise AuthError("Invalid access token")
    return user_id
