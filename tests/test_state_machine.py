"""Unit tests for video token state-machine guardrails."""

import pytest

from onceview.common.errors import TokenAlreadyViewed, TokenExpired, TokenNotRedeemable, TokenRevoked
from onceview.common.state_machine import (
    ACTIVE,
    EXPIRED,
    REVOKED,
    VIEWED,
    is_terminal,
    rejection_for,
    validate_transition,
)


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition(ACTIVE, VIEWED)
    validate_transition(ACTIVE, EXPIRED)
    validate_transition(ACTIVE, REVOKED)


@pytest.mark.parametrize(
    "current,error",
    [(VIEWED, TokenAlreadyViewed), (EXPIRED, TokenExpired), (REVOKED, TokenRevoked)],
)
def test_terminal_states_reject_every_transition(current, error):
    """Terminal states never move again, not even back to active."""

    for target in (ACTIVE, VIEWED, EXPIRED, REVOKED):
        with pytest.raises(error):
            validate_transition(current, target)


def test_unknown_status_is_not_redeemable():
    with pytest.raises(TokenNotRedeemable):
        validate_transition("archived", VIEWED)


def test_rejection_reasons():
    assert rejection_for(VIEWED).details["reason"] == "already_viewed"
    assert rejection_for(EXPIRED).details["reason"] == "expired"
    assert rejection_for(REVOKED).details["reason"] == "revoked"
    assert rejection_for(VIEWED).status_code == 410
    assert not is_terminal(ACTIVE)
    assert is_terminal(VIEWED)
