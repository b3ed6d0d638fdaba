"""Webhook delivery module."""

from .engine import IWebhookDeliveryEngine, WebhookDeliveryEngine
from .lease import LocalLease, ScanLease, StorageLease
from .retry import ExponentialBackoff, NoRetry, RetryPolicy
from .signing import (
    BOT_ID_HEADER,
    SIGNATURE_HEADER,
    delivery_headers,
    sign_payload,
    verify_signature,
)

__all__ = [
    "IWebhookDeliveryEngine",
    "WebhookDeliveryEngine",
    "LocalLease",
    "ScanLease",
    "StorageLease",
    "ExponentialBackoff",
    "NoRetry",
    "RetryPolicy",
    "BOT_ID_HEADER",
    "SIGNATURE_HEADER",
    "delivery_headers",
    "sign_payload",
    "verify_signature",
]
