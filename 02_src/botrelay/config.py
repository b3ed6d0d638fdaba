"""Project-level configuration and path helpers."""

import os
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "botrelay.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Webhook delivery
WEBHOOK_SCAN_INTERVAL = 5.0  # seconds between scans
WEBHOOK_BATCH_SIZE = 50  # updates claimed per bot per scan
WEBHOOK_TIMEOUT = 10.0  # per POST
WEBHOOK_RESPONSE_LIMIT = 500  # bytes of response body kept in the log
WEBHOOK_MAX_CONNECTIONS = 40
WEBHOOK_MAX_CONNECTIONS_CAP = 100

# Long polling
LONG_POLL_DEFAULT_LIMIT = 20
LONG_POLL_MAX_LIMIT = 100
LONG_POLL_MAX_TIMEOUT = 30
LONG_POLL_INTERVAL = 1.0

# Bots
MAX_BOTS_PER_OWNER = 20
MAX_COMMANDS = 100
BOT_SEND_RATE_LIMIT = 60  # outbound messages per bot per minute, 0 disables


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def env_float(name: str, default: float) -> float:
    """Read a float setting from the environment."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def env_int(name: str, default: int) -> int:
    """Read an int setting from the environment."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag (1/true/yes/on) from the environment."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
