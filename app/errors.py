"""
Domain errors for the session lifecycle.

Services raise these; ``app.main`` renders them as ``{"detail": {"code", "message", ...}}``
with the status code attached to each class. Routes do not catch them.
"""
from typing import Any, Dict


class DomainError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.extra}


class NotFound(DomainError):
    """Resource absent or not owned by the caller. The two cases are never distinguished."""
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Session not found"


class InvalidState(DomainError):
    status_code = 409
    code = "INVALID_STATE"
    default_message = "Operation is not allowed in the current session state"


class InvalidOrExpired(DomainError):
    status_code = 404
    code = "INVITATION_INVALID_OR_EXPIRED"
    default_message = "Invitation is invalid or has expired."

    def __init__(self):
        # Same message for unknown, mismatched and expired tokens.
        super().__init__()


class EntitlementDenied(DomainError):
    status_code = 402
    code = "UPGRADE_REQUIRED"
    default_message = "Please upgrade to premium to continue."

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message, reason=reason, upgradePath="/subscriptions")


class NotReady(DomainError):
    status_code = 403
    code = "REVEAL_NOT_READY"
    default_message = "Both parties must be ready to reveal."

    def __init__(self, message: str | None = None):
        super().__init__(message, retryable=True)


class UpstreamFailure(DomainError):
    status_code = 502
    code = "UPSTREAM_FAILURE"
    default_message = "Content generation failed. Please try again."

    def __init__(self, message: str | None = None, parse_error: bool = False):
        # True when the model answered but the payload was unusable.
        self.parse_error = parse_error
        super().__init__(message)
