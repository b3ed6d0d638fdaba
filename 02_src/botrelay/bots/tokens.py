"""Bot identifiers, tokens and input sanitizing."""

import hashlib
import hmac
import html
import re
import secrets

USERNAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]{2,30}_bot$")


def generate_bot_id() -> str:
    return "bot_" + secrets.token_hex(12)


def generate_bot_token(bot_id: str) -> str:
    """'<bot_id>:<hex>' where hex is HMAC-SHA256 keyed by the bot ID over random bytes."""
    nonce = secrets.token_hex(32)
    digest = hmac.new(bot_id.encode("utf-8"), nonce.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{bot_id}:{digest}"


def generate_webhook_secret() -> str:
    return secrets.token_hex(16)


def is_valid_username(username: str) -> bool:
    return bool(USERNAME_PATTERN.match(username))


def sanitize(value):
    """HTML-escape user supplied text; non-strings pass through."""
    if not isinstance(value, str):
        return value
    return html.escape(value, quote=True)
