"""Typed error taxonomy for token lifecycle operations.

Services raise these; the API layer maps them to HTTP responses with one
exception handler. Redemption failures carry fixed, non-leaking messages.
"""

from typing import Any


class OnceviewError(Exception):
    """Base error carrying a stable code, message, and optional details."""

    status_code = 500
    error_code = "ONCEVIEW_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(OnceviewError):
    """Malformed or missing caller input. Never persisted, never retried."""

    status_code = 422
    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Validation failed for field '{field}': {reason}", {"field": field, "reason": reason})
        self.field = field
        self.reason = reason


class NotFoundError(OnceviewError):
    status_code = 404
    error_code = "NOT_FOUND"


class TokenNotFound(NotFoundError):
    error_code = "TOKEN_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__("Token not found")


class ProfileNotFound(NotFoundError):
    error_code = "PROFILE_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__("Profile not found")


class VideoNotFound(NotFoundError):
    error_code = "VIDEO_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__("Video not found")


class StateConflictError(OnceviewError):
    """Token is in a state incompatible with the requested transition."""

    status_code = 409
    error_code = "STATE_CONFLICT"


class TokenNotRedeemable(StateConflictError):
    """Raised for any attempt to move a token out of a terminal state."""

    status_code = 410
    error_code = "TOKEN_NOT_REDEEMABLE"
    reason = "not_redeemable"

    def __init__(self, message: str = "Token can no longer be used", status: str | None = None) -> None:
        details = {"reason": self.reason}
        if status is not None:
            details["status"] = status
        super().__init__(message, details)


class TokenExpired(TokenNotRedeemable):
    error_code = "TOKEN_EXPIRED"
    reason = "expired"

    def __init__(self) -> None:
        super().__init__("Token has expired")


class TokenAlreadyViewed(TokenNotRedeemable):
    error_code = "TOKEN_ALREADY_VIEWED"
    reason = "already_viewed"

    def __init__(self) -> None:
        super().__init__("This video has already been viewed and is no longer available")


class TokenRevoked(TokenNotRedeemable):
    error_code = "TOKEN_REVOKED"
    reason = "revoked"

    def __init__(self) -> None:
        super().__init__("This token has been revoked by the sender")


class DuplicateError(OnceviewError):
    status_code = 409
    error_code = "DUPLICATE"


class ResponseAlreadyExists(DuplicateError):
    error_code = "RESPONSE_ALREADY_EXISTS"

    def __init__(self) -> None:
        super().__init__("A response has already been submitted for this token")


class ProfileAlreadyExists(DuplicateError):
    error_code = "PROFILE_ALREADY_EXISTS"

    def __init__(self) -> None:
        super().__init__("A profile already exists for this owner")


class StoreError(OnceviewError):
    """Transactional failure; the whole operation is safe to retry."""

    status_code = 503
    error_code = "STORE_ERROR"


class StoreUnavailable(StoreError):
    error_code = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            f"Database operation '{operation}' failed: {reason}",
            {"operation": operation},
        )


class IdentifierExhausted(OnceviewError):
    """No free token code found within the bounded retry budget."""

    status_code = 503
    error_code = "IDENTIFIER_EXHAUSTED"

    def __init__(self, kind: str, attempts: int) -> None:
        super().__init__(
            f"Could not allocate a unique {kind} token code after {attempts} attempts",
            {"kind": kind, "attempts": attempts},
        )
