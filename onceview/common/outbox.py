"""Transactional outbox bound to one model.

Rows are inserted in the same transaction as the record they announce and
published only after that transaction commits. A row moves
PENDING -> PROCESSING -> SENT, or back to PENDING when publishing fails; a
PROCESSING row older than the claim timeout is treated as abandoned.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, func, or_, select, update

from onceview.common.db import as_utc
from onceview.common.metrics import outbox_oldest_pending_age_seconds, outbox_pending_total

PENDING = "PENDING"
PROCESSING = "PROCESSING"
SENT = "SENT"


class Outbox:
    def __init__(self, model, service_name: str, claim_timeout_seconds: int = 30) -> None:
        self.table = model.__table__
        self.service_name = service_name
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)

    def claim(self, db, limit: int = 100) -> list[dict]:
        """Mark up to `limit` publishable rows PROCESSING and return them."""

        c = self.table.c
        now = datetime.now(timezone.utc)
        publishable = or_(
            c.status == PENDING,
            and_(c.status == PROCESSING, c.sent_at.is_not(None), c.sent_at < now - self.claim_timeout),
        )
        # Locked until the caller commits; concurrent publishers skip these rows.
        ids = db.execute(
            select(c.id).where(publishable).order_by(c.created_at).limit(limit).with_for_update(skip_locked=True)
        ).scalars().all()
        if not ids:
            return []
        claimed = db.execute(
            update(self.table)
            .where(c.id.in_(ids))
            .values(status=PROCESSING, sent_at=now)
            .returning(c.id, c.aggregate_id, c.topic, c.payload)
        ).all()
        return [dict(row._mapping) for row in claimed]

    def mark_sent(self, db, event_id: str) -> bool:
        """Returns False when the row was no longer claimed by this publisher."""

        c = self.table.c
        result = db.execute(
            update(self.table)
            .where(c.id == event_id, c.status == PROCESSING)
            .values(status=SENT, sent_at=datetime.now(timezone.utc))
        )
        return result.rowcount == 1

    def release(self, db, event_id: str) -> None:
        c = self.table.c
        db.execute(
            update(self.table).where(c.id == event_id, c.status == PROCESSING).values(status=PENDING, sent_at=None)
        )

    def refresh_backlog_metrics(self, db) -> None:
        c = self.table.c
        unsent = c.status.in_((PENDING, PROCESSING))
        depth, oldest = db.execute(select(func.count(), func.min(c.created_at)).where(unsent)).one()
        age = 0.0
        if oldest is not None:
            age = max(0.0, (datetime.now(timezone.utc) - as_utc(oldest)).total_seconds())
        outbox_pending_total.labels(service=self.service_name).set(float(depth))
        outbox_oldest_pending_age_seconds.labels(service=self.service_name).set(age)
