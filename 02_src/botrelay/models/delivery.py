"""Webhook delivery audit models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DeliveryOutcome(str, Enum):
    """Outcome of one webhook push."""

    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"  # consumed but excluded by the allowed-updates filter


@dataclass
class DeliveryRecord:
    """Append-only audit entry for a webhook push attempt."""

    id: int | None
    bot_id: str
    update_id: int
    event_type: str
    payload: str  # the exact signed body
    webhook_url: str
    response_code: int
    response_body: str
    outcome: DeliveryOutcome
    attempts: int
    delivered_at: datetime | None
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bot_id": self.bot_id,
            "update_id": self.update_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "webhook_url": self.webhook_url,
            "response_code": self.response_code,
            "response_body": self.response_body,
            "delivery_status": self.outcome.value,
            "attempts": self.attempts,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "created_at": self.created_at.isoformat(),
        }
