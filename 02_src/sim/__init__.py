"""Example external bot."""

from .sim import ISim, Sim, reply_text, verify_webhook_request

__all__ = ["ISim", "Sim", "reply_text", "verify_webhook_request"]
