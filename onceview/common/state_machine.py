"""Video token state machine transitions enforced by the token service."""

from onceview.common.errors import TokenAlreadyViewed, TokenExpired, TokenNotRedeemable, TokenRevoked

ACTIVE = "active"
VIEWED = "viewed"
EXPIRED = "expired"
REVOKED = "revoked"

TOKEN_STATUSES = (ACTIVE, VIEWED, EXPIRED, REVOKED)
TERMINAL_STATUSES = frozenset({VIEWED, EXPIRED, REVOKED})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    ACTIVE: {VIEWED, EXPIRED, REVOKED},
    VIEWED: set(),
    EXPIRED: set(),
    REVOKED: set(),
}

_TERMINAL_ERRORS = {
    VIEWED: TokenAlreadyViewed,
    EXPIRED: TokenExpired,
    REVOKED: TokenRevoked,
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def rejection_for(status: str) -> TokenNotRedeemable:
    """Return the typed rejection for a token sitting in `status`."""

    error_cls = _TERMINAL_ERRORS.get(status)
    if error_cls is None:
        return TokenNotRedeemable(status=status)
    return error_cls()


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine.

    Terminal states raise their specific rejection so callers can surface the
    reason directly.
    """

    if new in ALLOWED_TRANSITIONS.get(current, set()):
        return
    if is_terminal(current):
        raise rejection_for(current)
    raise TokenNotRedeemable(f"Invalid transition: {current} -> {new}", status=current)
