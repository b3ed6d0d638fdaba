"""Request dependencies resolving the calling bot or user."""

from typing import Any, Awaitable, Callable

from fastapi import Request

from ..app import IApplication
from ..auth import authenticate_bot, authenticate_user, extract_access_token, extract_bot_token
from ..models import Bot


async def json_body(request: Request) -> Any:
    """Parsed JSON body, or None for bodiless or non-JSON requests."""
    if request.method in ("GET", "HEAD", "DELETE"):
        return None
    try:
        return await request.json()
    except ValueError:
        return None


def bot_dependency(app: IApplication) -> Callable[[Request], Awaitable[Bot]]:
    """Dependency resolving the bot from Bot-Token, ?bot_token or body bot_token."""

    async def current_bot(request: Request) -> Bot:
        body = await json_body(request)
        token = extract_bot_token(request.headers, request.query_params, body)
        return await authenticate_bot(app.storage, token)

    return current_bot


def user_dependency(app: IApplication) -> Callable[[Request], Awaitable[int]]:
    """Dependency resolving the user from Access-Token or ?access_token."""

    async def current_user(request: Request) -> int:
        token = extract_access_token(request.headers, request.query_params)
        return await authenticate_user(app.storage, token)

    return current_user
