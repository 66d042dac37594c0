"""Session-scoped helpers for token rows and the activity trail.

Every function takes an open session and never commits; callers own the
transaction boundary so each operation commits or rolls back as one unit.
"""

from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from onceview.common.config import settings
from onceview.common.db import as_utc
from onceview.common.errors import ValidationError
from onceview.common.identifiers import issue_unique_code
from onceview.common.logging import logger
from onceview.common.metrics import tokens_expired_total
from onceview.common.state_machine import ACTIVE, EXPIRED, validate_transition
from onceview.services.tokens.models import Profile, TokenActivityLog, VideoToken

ACTIVITY_TYPES = ("created", "viewed", "responded", "expired", "revoked")


def get_token_by_code(db, token_code: str, lock: bool = False) -> VideoToken | None:
    """Load one token; `lock=True` holds the row until the transaction ends."""

    stmt = select(VideoToken).where(VideoToken.token_code == token_code)
    if lock:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def get_profile_by_token(db, profile_token: str) -> Profile | None:
    return db.execute(select(Profile).where(Profile.profile_token == profile_token)).scalar_one_or_none()


def _code_taken(db, column, code: str) -> bool:
    return db.execute(select(column).where(column == code)).first() is not None


def insert_with_unique_code(db, row, code_attr: str, kind: str) -> str:
    """Assign a fresh code to `row` and insert it inside a SAVEPOINT.

    A code already present, or a unique violation on insert from a concurrent
    writer, counts as a collision and is retried with a new code.
    """

    column = getattr(type(row), code_attr)

    def claim(code: str) -> bool:
        if _code_taken(db, column, code):
            return False
        setattr(row, code_attr, code)
        try:
            with db.begin_nested():
                db.add(row)
                db.flush()
        except IntegrityError:
            if _code_taken(db, column, code):
                return False
            raise
        return True

    return issue_unique_code(kind, claim)


def compute_expiry(now: datetime, days_valid: int | None) -> datetime:
    """Return `now + days_valid` after bounds-checking the requested lifetime."""

    if days_valid is None:
        days_valid = settings.token_default_days_valid
    if isinstance(days_valid, bool) or not isinstance(days_valid, int):
        raise ValidationError("days_valid", "must be an integer")
    if days_valid < 1 or days_valid > settings.token_max_days_valid:
        raise ValidationError("days_valid", f"must be between 1 and {settings.token_max_days_valid}")
    return now + timedelta(days=days_valid)


def append_activity(
    db,
    activity_type: str,
    token: VideoToken | None = None,
    profile_id: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    details: dict | None = None,
) -> TokenActivityLog:
    """Append one immutable activity entry for a video token or a profile."""

    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"unknown activity type: {activity_type}")
    if (token is None) == (profile_id is None):
        raise ValueError("activity entry needs exactly one of token or profile_id")
    entry = TokenActivityLog(
        log_type="video_token" if token is not None else "profile_token",
        video_token_id=token.id if token is not None else None,
        profile_id=profile_id,
        activity_type=activity_type,
        ip_address=ip_address,
        user_agent=user_agent,
        details=details,
    )
    db.add(entry)
    return entry


def is_past_expiry(token: VideoToken, now: datetime) -> bool:
    return now > as_utc(token.expires_at)


def expire_if_due(db, token: VideoToken, now: datetime) -> bool:
    """Flip an active, past-expiry token to `expired` and log it.

    Returns True when this call performed the flip. The write is guarded by
    status and `state_version`, so a concurrent transition wins cleanly.
    """

    if token.status != ACTIVE or not is_past_expiry(token, now):
        return False
    validate_transition(token.status, EXPIRED)
    current_version = token.state_version
    result = db.execute(
        update(VideoToken)
        .where(
            VideoToken.id == token.id,
            VideoToken.status == ACTIVE,
            VideoToken.state_version == current_version,
        )
        .values(status=EXPIRED, state_version=current_version + 1)
    )
    if result.rowcount != 1:
        db.refresh(token)
        return False
    token.status = EXPIRED
    token.state_version = current_version + 1
    append_activity(
        db,
        "expired",
        token=token,
        details={"expired_at": now.isoformat(), "expires_at": as_utc(token.expires_at).isoformat()},
    )
    logger.info("token expired lazily token_id=%s", token.id)
    tokens_expired_total.labels(service=settings.service_name).inc()
    return True


def expire_due_tokens(db, owner_id: str, now: datetime) -> int:
    """Apply lazy expiry to every due token of one owner; returns flips made."""

    due = db.execute(
        select(VideoToken)
        .where(
            VideoToken.owner_id == owner_id,
            VideoToken.status == ACTIVE,
            VideoToken.expires_at < now,
        )
        .with_for_update()
    ).scalars().all()
    return sum(1 for token in due if expire_if_due(db, token, now))
