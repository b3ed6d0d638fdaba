"""Main entry point for the bot relay."""

import asyncio
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from botrelay.api import create_fastapi_app
from botrelay.logging_config import get_logger, setup_logging
from sim import Sim

logger = get_logger(__name__)


async def serve(host: str, port: int, sim_token: str | None) -> None:
    """Run the API server, plus the example echo bot when a token is given."""
    config = uvicorn.Config(create_fastapi_app(), host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    sim = None
    if sim_token:
        # Polls fail until the server is listening; Sim retries every second
        sim = Sim(bot_token=sim_token, api_url=f"http://{host}:{port}")
        await sim.start()
        logger.info("Example echo bot started")

    try:
        await server.serve()
    finally:
        if sim:
            await sim.stop()


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    setup_logging()

    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))

    asyncio.run(serve(api_host, api_port, os.getenv("SIM_BOT_TOKEN")))


if __name__ == "__main__":
    main()
