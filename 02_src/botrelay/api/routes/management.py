"""Bot management routes (authenticated by user access token)."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ...app import IApplication
from ...auth import extract_access_token
from ..deps import user_dependency
from .bot_api import OkResponse


class CreateBotRequest(BaseModel):
    """Request model for creating a bot."""

    username: str | None = None
    display_name: str | None = None
    description: str = ""
    about: str = ""
    category: str = "general"
    is_public: Any = True
    can_join_groups: Any = True


class UpdateBotRequest(BaseModel):
    display_name: str | None = None
    description: str | None = None
    about: str | None = None
    category: str | None = None
    is_public: Any = None
    can_join_groups: Any = None
    status: str | None = None


class UserMessageRequest(BaseModel):
    """A user writing to a bot: text, a command or a button press."""

    text: str | None = None
    callback_data: str | None = None
    media: dict | None = None
    chat_type: str = "private"


def create_management_router(app: IApplication) -> APIRouter:
    """Create bot management router."""
    router = APIRouter(prefix="/api/bots", tags=["bots"])
    current_user = user_dependency(app)

    @router.post("", response_model=OkResponse)
    async def create_bot(request: CreateBotRequest, user_id: int = Depends(current_user)) -> dict:
        """Create a bot; the response carries its token."""
        bot = await app.bot_service.create_bot(
            owner_id=user_id,
            username=request.username,
            display_name=request.display_name,
            description=request.description,
            about=request.about,
            category=request.category,
            is_public=request.is_public,
            can_join_groups=request.can_join_groups,
        )
        return {"ok": True, "result": bot.to_public_dict(include_token=True)}

    @router.get("/my", response_model=OkResponse)
    async def list_my_bots(
        limit: int = 20, offset: int = 0, user_id: int = Depends(current_user)
    ) -> dict:
        bots = await app.bot_service.list_my_bots(user_id, limit, offset)
        return {"ok": True, "result": {"bots": bots, "count": len(bots)}}

    @router.get("/search", response_model=OkResponse)
    async def search_bots(q: str | None = None, limit: int = 20, offset: int = 0) -> dict:
        """Public search; no credential needed."""
        bots = await app.bot_service.search_bots(q, limit, offset)
        return {"ok": True, "result": {"bots": bots, "count": len(bots)}}

    @router.get("/{bot_id}", response_model=OkResponse)
    async def get_bot_info(bot_id: str, request: Request) -> dict:
        """Public profile; the owner also sees the token."""
        viewer_id = None
        token = extract_access_token(request.headers, request.query_params)
        if token:
            viewer_id = await app.storage.get_session_user(token)
        return {"ok": True, "result": await app.bot_service.get_bot_info(bot_id, viewer_id)}

    @router.patch("/{bot_id}", response_model=OkResponse)
    async def update_bot(
        bot_id: str, request: UpdateBotRequest, user_id: int = Depends(current_user)
    ) -> dict:
        bot = await app.bot_service.update_bot(bot_id, user_id, request.model_dump())
        return {"ok": True, "result": bot.to_public_dict()}

    @router.delete("/{bot_id}", response_model=OkResponse)
    async def delete_bot(bot_id: str, user_id: int = Depends(current_user)) -> dict:
        """Delete the bot with its commands, messages, members and logs."""
        bot = await app.bot_service.delete_bot(bot_id, user_id)
        return {"ok": True, "result": {"bot_id": bot.bot_id, "username": bot.username}}

    @router.post("/{bot_id}/token", response_model=OkResponse)
    async def regenerate_token(bot_id: str, user_id: int = Depends(current_user)) -> dict:
        token = await app.bot_service.regenerate_token(bot_id, user_id)
        return {"ok": True, "result": {"bot_token": token}}

    @router.post("/{bot_id}/messages", response_model=OkResponse)
    async def post_user_message(
        bot_id: str, request: UserMessageRequest, user_id: int = Depends(current_user)
    ) -> dict:
        """User -> bot ingress; built-in bots reply before this returns."""
        update = await app.bot_service.post_user_message(
            bot_id,
            user_id,
            text=request.text,
            callback_data=request.callback_data,
            media=request.media,
            chat_type=request.chat_type,
        )
        return {
            "ok": True,
            "result": {
                "update_id": update.id,
                "update_type": update.update_type,
                "chat_id": update.chat_id,
            },
        }

    return router
