"""Owner notifications derived from accepted viewer responses.

Notification creation is best-effort: a failed insert is logged and reported
back as a warning, never raised into the response path. Delivery to external
channels goes through the outbox after the notification has committed.
"""

import asyncio
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from onceview.common.db import as_utc, unit_of_work, utcnow
from onceview.common.errors import NotFoundError
from onceview.common.events import EventEnvelope, KafkaBus
from onceview.common.logging import logger, trace_id_ctx
from onceview.common.metrics import notification_failures_total
from onceview.common.outbox import Outbox
from onceview.services.notification.models import Notification, OutboxEvent

NOTIFICATION_TYPE = "interested_response"
NOTIFICATION_TOPIC = "notifications.created"
NOTIFICATION_FAILED_WARNING = "Response saved, but the owner notification could not be created"

_MESSAGES = {
    "interested": "{name} is interested in connecting with you!",
    "maybe_later": "{name} might be interested later.",
    "not_interested": "{name} is not interested at this time.",
}


def compose_notification(interest_level: str, viewer_name: str) -> tuple[str, str]:
    """Return `(title, message)` for a response's interest level."""

    template = _MESSAGES.get(interest_level, _MESSAGES["not_interested"])
    return f"New Response: {viewer_name}", template.format(name=viewer_name)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.details or {},
        "is_read": notification.is_read,
        "read_at": as_utc(notification.read_at).isoformat() if notification.read_at else None,
        "created_at": as_utc(notification.created_at).isoformat(),
    }


class NotificationService:
    """Writes owner notifications and publishes them after commit."""

    def __init__(self, session_factory, service_name: str = "notification") -> None:
        self.session_factory = session_factory
        self.kafka = KafkaBus()
        self.service_name = service_name
        self.outbox = Outbox(OutboxEvent, service_name)

    def dispatch(
        self,
        owner_id: str,
        response_id: str,
        interest_level: str,
        viewer_name: str,
        target_key: str,
        target_id: str,
    ) -> str | None:
        """Insert one notification for `owner_id`; returns a warning on failure."""

        title, message = compose_notification(interest_level, viewer_name)
        metadata = {"response_id": response_id, target_key: target_id, "interest_level": interest_level}
        try:
            with self.session_factory() as db:
                notification = Notification(
                    owner_id=owner_id,
                    type=NOTIFICATION_TYPE,
                    title=title,
                    message=message,
                    details=metadata,
                    is_read=False,
                    is_email_sent=False,
                )
                db.add(notification)
                db.flush()
                db.add(
                    OutboxEvent(
                        aggregate_type="notification",
                        aggregate_id=notification.id,
                        event_type=NOTIFICATION_TOPIC,
                        topic=NOTIFICATION_TOPIC,
                        payload=EventEnvelope(
                            event_type=NOTIFICATION_TOPIC,
                            aggregate_id=notification.id,
                            trace_id=trace_id_ctx.get() or str(uuid4()),
                            payload={"owner_id": owner_id, "title": title, "message": message, **metadata},
                        ).model_dump(),
                    )
                )
                db.commit()
        except SQLAlchemyError as exc:
            logger.warning("notification insert failed response_id=%s error=%s", response_id, exc)
            notification_failures_total.labels(service=self.service_name).inc()
            return NOTIFICATION_FAILED_WARNING
        logger.info("notification created owner_id=%s response_id=%s", owner_id, response_id)
        return None

    def list_notifications(self, owner_id: str, unread_only: bool = False, limit: int = 50) -> list[dict]:
        with unit_of_work(self.session_factory, "list_notifications") as db:
            stmt = select(Notification).where(Notification.owner_id == owner_id)
            if unread_only:
                stmt = stmt.where(Notification.is_read.is_(False))
            rows = db.execute(stmt.order_by(Notification.created_at.desc()).limit(limit)).scalars().all()
            return [serialize_notification(row) for row in rows]

    def mark_read(self, owner_id: str, notification_id: str) -> dict:
        """Flip the read flag; the only mutation a notification accepts from owners."""

        with unit_of_work(self.session_factory, "mark_notification_read") as db:
            notification = db.get(Notification, notification_id)
            if notification is None or notification.owner_id != owner_id:
                raise NotFoundError("Notification not found")
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
                db.commit()
            return serialize_notification(notification)

    def _mark_delivered(self, db, row: dict) -> None:
        if not self.outbox.mark_sent(db, row["id"]):
            return
        notification = db.get(Notification, row["aggregate_id"])
        if notification is not None:
            notification.is_email_sent = True
            notification.email_sent_at = utcnow()

    async def publish_pending(self, limit: int = 100) -> int:
        """Publish one claimed batch; returns how many rows were delivered."""

        with self.session_factory() as db:
            rows = self.outbox.claim(db, limit=limit)
            self.outbox.refresh_backlog_metrics(db)
            db.commit()
        delivered = 0
        for row in rows:
            try:
                await self.kafka.publish(row["topic"], EventEnvelope(**row["payload"]))
            except Exception as exc:
                logger.exception("notification outbox publish failed: %s", exc)
                with self.session_factory() as db:
                    self.outbox.release(db, row["id"])
                    self.outbox.refresh_backlog_metrics(db)
                    db.commit()
                continue
            with self.session_factory() as db:
                self._mark_delivered(db, row)
                self.outbox.refresh_backlog_metrics(db)
                db.commit()
            delivered += 1
        return delivered

    async def outbox_publisher(self) -> None:
        """Continuously publish notification outbox rows to Kafka."""

        while True:
            try:
                await self.publish_pending()
            except SQLAlchemyError as exc:
                logger.error("notification outbox claim failed: %s", exc)
            await asyncio.sleep(0.5)
