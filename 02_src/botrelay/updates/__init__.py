"""Update log module."""

from .envelope import build_envelope, canonical_json, sender_for
from .log import IUpdateLog, UpdateLog

__all__ = ["IUpdateLog", "UpdateLog", "build_envelope", "canonical_json", "sender_for"]
