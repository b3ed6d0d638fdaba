"""JSON-lines logging for the relay: rotating file under 04_logs plus stdout."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Keys lifted from extra={"context": {...}} to the top level of a record
CONTEXT_KEYS = ("bot_id", "update_id", "user_id")

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """One JSON object per line; delivery context keys are searchable fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }

        context = dict(getattr(record, "context", None) or {})
        for key in CONTEXT_KEYS:
            if key in context:
                entry[key] = context.pop(key)
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure the root logger.

    LOG_LEVEL and LOG_FILE fill in missing arguments. LOG_CONSOLE=text
    switches stdout to a plain format for local runs; the file stays JSON.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    path = Path(log_file or os.getenv("LOG_FILE") or DEFAULT_LOG_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    console_format = "text" if os.getenv("LOG_CONSOLE", "").lower() == "text" else "json"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONFormatter},
                "text": {"format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s"},
            },
            "handlers": {
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": str(path),
                    "maxBytes": LOG_FILE_MAX_BYTES,
                    "backupCount": LOG_FILE_BACKUPS,
                    "formatter": "json",
                    "encoding": "utf-8",
                },
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": console_format,
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"level": level, "handlers": ["file", "console"]},
            "loggers": {
                # One INFO line per webhook POST otherwise
                "httpx": {"level": "WARNING"},
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
