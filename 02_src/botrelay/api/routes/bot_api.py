"""Bot API routes (authenticated by bot token)."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ...app import IApplication
from ...models import Bot
from ..deps import bot_dependency, json_body


class SendMessageRequest(BaseModel):
    """Request model for sendMessage."""

    chat_id: int | str | None = None
    text: str | None = None
    media: dict | None = None
    reply_markup: dict | None = None


class EditMessageRequest(BaseModel):
    chat_id: int | str | None = None
    message_id: int | str | None = None
    text: str | None = None
    reply_markup: dict | None = None


class DeleteMessageRequest(BaseModel):
    chat_id: int | str | None = None
    message_id: int | str | None = None


class AnswerCallbackRequest(BaseModel):
    callback_query_id: int | str | None = None
    text: str = ""
    show_alert: bool = False
    chat_id: int | str | None = None


class SetCommandsRequest(BaseModel):
    commands: Any = None


class SetWebhookRequest(BaseModel):
    """Request model for setWebhook; an empty url removes the webhook."""

    url: str | None = None
    secret: str | None = None
    max_connections: int | str | None = None
    allowed_updates: list[str] | None = None


class SetUserStateRequest(BaseModel):
    user_id: int | str | None = None
    state: str | None = None
    state_data: dict | None = None


class OkResponse(BaseModel):
    """Response model for operations without a result."""

    ok: bool = True
    result: Any = None


def create_bot_api_router(app: IApplication) -> APIRouter:
    """Create bot API router."""
    router = APIRouter(prefix="/api/bot", tags=["bot"])
    current_bot = bot_dependency(app)

    @router.get("/getMe", response_model=OkResponse)
    async def get_me(bot: Bot = Depends(current_bot)) -> dict:
        return {"ok": True, "result": await app.bot_service.get_me(bot)}

    @router.api_route("/getUpdates", methods=["GET", "POST"], response_model=OkResponse)
    async def get_updates(request: Request, bot: Bot = Depends(current_bot)) -> dict:
        """Long poll: returns immediately when updates are pending, else waits up to `timeout`.

        The envelope list is wrapped like every other route:
        `{"ok": true, "result": {"updates": [...], "count": n}}`.
        """
        params: dict[str, Any] = dict(request.query_params)
        body = await json_body(request)
        if isinstance(body, dict):
            params.update(body)
        result = await app.dispatcher.get_updates(
            bot,
            offset=params.get("offset"),
            limit=params.get("limit"),
            timeout=params.get("timeout"),
        )
        return {"ok": True, "result": result}

    @router.post("/sendMessage", response_model=OkResponse)
    async def send_message(request: SendMessageRequest, bot: Bot = Depends(current_bot)) -> dict:
        update = await app.bot_service.send_message(
            bot,
            request.chat_id,
            text=request.text,
            media=request.media,
            reply_markup=request.reply_markup,
        )
        return {
            "ok": True,
            "result": {
                "message_id": update.id,
                "chat_id": update.chat_id,
                "date": int(update.created_at.timestamp()) if update.created_at else None,
                "text": update.text,
            },
        }

    @router.post("/editMessage", response_model=OkResponse)
    async def edit_message(request: EditMessageRequest, bot: Bot = Depends(current_bot)) -> dict:
        await app.bot_service.edit_message(
            bot, request.chat_id, request.message_id, request.text, request.reply_markup
        )
        return {"ok": True}

    @router.post("/deleteMessage", response_model=OkResponse)
    async def delete_message(request: DeleteMessageRequest, bot: Bot = Depends(current_bot)) -> dict:
        await app.bot_service.delete_message(bot, request.chat_id, request.message_id)
        return {"ok": True}

    @router.post("/answerCallbackQuery", response_model=OkResponse)
    async def answer_callback_query(
        request: AnswerCallbackRequest, bot: Bot = Depends(current_bot)
    ) -> dict:
        await app.bot_service.answer_callback_query(
            bot,
            request.callback_query_id,
            text=request.text,
            show_alert=request.show_alert,
            chat_id=request.chat_id,
        )
        return {"ok": True}

    @router.post("/setCommands", response_model=OkResponse)
    async def set_commands(request: SetCommandsRequest, bot: Bot = Depends(current_bot)) -> dict:
        count = await app.bot_service.set_commands(bot, request.commands)
        return {"ok": True, "result": {"count": count}}

    @router.get("/getCommands", response_model=OkResponse)
    async def get_commands(bot: Bot = Depends(current_bot)) -> dict:
        return {"ok": True, "result": await app.bot_service.get_commands(bot)}

    @router.post("/setWebhook", response_model=OkResponse)
    async def set_webhook(request: SetWebhookRequest, bot: Bot = Depends(current_bot)) -> dict:
        """Enable push delivery; the secret in the result is what receivers verify with."""
        config = await app.bot_service.set_webhook(
            bot,
            request.url,
            secret=request.secret,
            max_connections=request.max_connections,
            allowed_updates=request.allowed_updates,
        )
        if not config.enabled:
            return {"ok": True, "result": {"url": "", "is_enabled": False}}
        return {
            "ok": True,
            "result": {
                "url": config.url,
                "secret": config.secret,
                "max_connections": config.max_connections,
                "allowed_updates": config.allowed_updates or [],
                "is_enabled": True,
            },
        }

    @router.post("/deleteWebhook", response_model=OkResponse)
    async def delete_webhook(bot: Bot = Depends(current_bot)) -> dict:
        await app.bot_service.delete_webhook(bot)
        return {"ok": True}

    @router.get("/getWebhookInfo", response_model=OkResponse)
    async def get_webhook_info(bot: Bot = Depends(current_bot)) -> dict:
        return {"ok": True, "result": await app.bot_service.get_webhook_info(bot)}

    @router.post("/setUserState", response_model=OkResponse)
    async def set_user_state(request: SetUserStateRequest, bot: Bot = Depends(current_bot)) -> dict:
        await app.bot_service.set_user_state(bot, request.user_id, request.state, request.state_data)
        return {"ok": True}

    @router.get("/getUserState", response_model=OkResponse)
    async def get_user_state(user_id: str | None = None, bot: Bot = Depends(current_bot)) -> dict:
        return {"ok": True, "result": await app.bot_service.get_user_state(bot, user_id)}

    return router
