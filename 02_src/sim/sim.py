"""SIM: an example external bot driving the bot API over HTTP."""

import asyncio
from typing import Protocol

import httpx

from botrelay.logging_config import get_logger
from botrelay.webhooks import SIGNATURE_HEADER, verify_signature

logger = get_logger(__name__)


class ISim(Protocol):
    """External bot process."""

    async def start(self) -> None:
        """Start polling."""
        ...

    async def stop(self) -> None:
        """Stop polling."""
        ...


def verify_webhook_request(secret: str, body: bytes, headers: dict) -> bool:
    """Receiver-side check of a pushed update, as a webhook owner would run it."""
    signature = headers.get(SIGNATURE_HEADER) or headers.get(SIGNATURE_HEADER.lower()) or ""
    return verify_signature(secret, body, signature)


def reply_text(envelope: dict) -> str | None:
    """Echo reply for one update envelope; None when there is nothing to answer."""
    if "callback_query" in envelope:
        return f"Button pressed: {envelope['callback_query'].get('data', '')}"
    if "command" in envelope:
        command = envelope["command"]
        args = f" {command['args']}" if command.get("args") else ""
        return f"Command /{command['name']}{args}"
    text = (envelope.get("message") or {}).get("text")
    if text:
        return f"Echo: {text}"
    if "media" in envelope:
        return f"Got your {envelope['media'].get('type', 'file')}"
    return None


class Sim:
    """Echo bot using long polling."""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "http://localhost:8000",
        poll_timeout: int = 30,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_url = api_url
        self._bot_token = bot_token
        self._poll_timeout = poll_timeout
        self._offset = 0
        self._running = False
        self._task: asyncio.Task | None = None
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        """Start polling."""
        if self._running:
            return

        self._running = True
        if self._client is None:
            self._client = httpx.AsyncClient()

        # Start background task
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop polling."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _run(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except httpx.HTTPError as e:
                logger.error("SIM: Polling failed: %s", e)
                await asyncio.sleep(1)

    async def poll_once(self) -> int:
        """One getUpdates round trip; answers every update and returns how many there were."""
        response = await self._client.post(
            f"{self._api_url}/api/bot/getUpdates",
            headers={"Bot-Token": self._bot_token},
            json={"offset": self._offset, "timeout": self._poll_timeout},
            timeout=self._poll_timeout + 10,
        )
        response.raise_for_status()
        updates = response.json()["result"]["updates"]

        for envelope in updates:
            self._offset = envelope["update_id"] + 1
            text = reply_text(envelope)
            if text is None:
                continue
            await self._send_message(envelope["message"]["chat"]["id"], text)
        return len(updates)

    async def _send_message(self, chat_id: str, text: str) -> None:
        """Send a message via HTTP API."""
        response = await self._client.post(
            f"{self._api_url}/api/bot/sendMessage",
            headers={"Bot-Token": self._bot_token},
            json={"chat_id": chat_id, "text": text},
            timeout=10.0,
        )
        if response.status_code == 200:
            logger.info("SIM: -> %s: %s", chat_id, text)
        else:
            logger.error("SIM: Error sending message: %s", response.status_code)
