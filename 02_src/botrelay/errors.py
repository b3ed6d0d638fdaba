"""Error taxonomy shared by the services and the HTTP layer."""


class BotRelayError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        data = {"error": type(self).__name__, "message": self.message}
        if self.field:
            data["field"] = self.field
        return data


class AuthError(BotRelayError):
    """Missing or invalid bot/user credential."""

    status_code = 401


class ValidationError(BotRelayError):
    """Malformed, missing or out-of-range request field."""

    status_code = 400


class PermissionDeniedError(BotRelayError):
    """Caller is authenticated but does not own the resource."""

    status_code = 403


class NotFoundError(BotRelayError):
    """Unknown bot, update or user."""

    status_code = 404


class RateLimitError(BotRelayError):
    """Bot exceeded its outbound message budget for the current window."""

    status_code = 429


class InternalError(BotRelayError):
    """Store or other collaborator unavailable."""

    status_code = 500


class DeliveryFailure(Exception):
    """A webhook POST failed (timeout, transport error or non-2xx).

    Never reaches API callers: the delivery engine records it and moves on.
    """

    def __init__(self, reason: str, response_code: int = 0):
        super().__init__(reason)
        self.reason = reason
        self.response_code = response_code
