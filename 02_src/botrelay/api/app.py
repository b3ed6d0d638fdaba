"""FastAPI application setup."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..app import Application
from ..errors import BotRelayError, InternalError
from ..logging_config import get_logger
from .routes import bot_api, delivery_log, management

logger = get_logger(__name__)

# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        """Manage application lifespan."""
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="Bot Relay API",
        description="Bot update distribution and webhook delivery",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:5174")
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(BotRelayError)
    async def bot_relay_error_handler(request: Request, exc: BotRelayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"ok": False, **exc.to_dict()})

    @fastapi_app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        error = InternalError("Internal server error")
        return JSONResponse(status_code=error.status_code, content={"ok": False, **error.to_dict()})

    @fastapi_app.get("/health")
    async def health_check() -> dict:
        return {"status": "healthy"}

    # Include routers
    fastapi_app.include_router(bot_api.create_bot_api_router(application))
    fastapi_app.include_router(delivery_log.create_delivery_log_router(application))
    fastapi_app.include_router(management.create_management_router(application))

    return fastapi_app
