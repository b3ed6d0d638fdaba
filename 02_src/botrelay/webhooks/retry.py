"""Retry policies for webhook delivery."""

from dataclasses import dataclass
from typing import Protocol

from ..errors import DeliveryFailure


class RetryPolicy(Protocol):
    """Decides whether a failed delivery gets another attempt."""

    def next_delay(self, attempt: int, failure: DeliveryFailure) -> float | None:
        """Seconds to wait before attempt+1, or None to give up."""
        ...


class NoRetry:
    """Single best-effort attempt."""

    def next_delay(self, attempt: int, failure: DeliveryFailure) -> float | None:
        return None


@dataclass
class ExponentialBackoff:
    """Retry timeouts, transport errors and 5xx with growing delays.

    4xx responses are final: the receiver rejected the request itself.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 30.0

    def next_delay(self, attempt: int, failure: DeliveryFailure) -> float | None:
        if attempt >= self.max_attempts:
            return None
        if 400 <= failure.response_code < 500:
            return None
        return min(self.base_delay * self.factor ** (attempt - 1), self.max_delay)
