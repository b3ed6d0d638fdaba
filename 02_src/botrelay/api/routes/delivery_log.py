"""Webhook delivery log routes."""

from fastapi import APIRouter, Depends

from ...app import IApplication
from ...models import Bot
from ..deps import bot_dependency
from .bot_api import OkResponse


def create_delivery_log_router(app: IApplication) -> APIRouter:
    """Create delivery log router."""
    router = APIRouter(prefix="/api/bot", tags=["delivery"])
    current_bot = bot_dependency(app)

    @router.get("/getWebhookLog", response_model=OkResponse)
    async def get_webhook_log(
        limit: int = 100,
        status: str | None = None,
        bot: Bot = Depends(current_bot),
    ) -> dict:
        """Most recent delivery records first, optionally filtered by outcome."""
        records = await app.bot_service.get_webhook_log(bot, limit=limit, outcome=status)
        return {"ok": True, "result": {"records": records, "count": len(records)}}

    return router
