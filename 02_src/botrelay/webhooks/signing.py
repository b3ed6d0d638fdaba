"""HMAC-SHA256 signing of webhook bodies."""

import hashlib
import hmac

SIGNATURE_HEADER = "X-Bot-Signature"
BOT_ID_HEADER = "X-Bot-Id"
USER_AGENT = "BotRelay/1.0"
SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, body: bytes) -> str:
    """Signature header value for a body: 'sha256=<hex>'."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check a received signature header against the raw request body."""
    if not signature:
        return False
    expected = sign_payload(secret, body)
    return hmac.compare_digest(expected, signature)


def delivery_headers(bot_id: str, signature: str) -> dict[str, str]:
    """Headers sent with every webhook POST."""
    return {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        SIGNATURE_HEADER: signature,
        BOT_ID_HEADER: bot_id,
    }
