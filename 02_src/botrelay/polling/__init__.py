"""Long polling module."""

from .dispatcher import ILongPollDispatcher, LongPollDispatcher, normalize_poll_params

__all__ = ["ILongPollDispatcher", "LongPollDispatcher", "normalize_poll_params"]
