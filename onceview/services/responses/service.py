"""Viewer response collection.

Validates anonymous submissions in a fixed order (structure, contact
consistency, target rules), stores them, and hands accepted responses to the
notification dispatcher after commit.
"""

import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from onceview.common.config import settings
from onceview.common.db import unit_of_work, utcnow
from onceview.common.errors import (
    OnceviewError,
    ProfileNotFound,
    ResponseAlreadyExists,
    TokenExpired,
    TokenNotFound,
    TokenRevoked,
    ValidationError,
)
from onceview.common.identifiers import PROFILE, VIDEO, parse_token_code
from onceview.common.logging import logger, token_code_ctx
from onceview.common.metrics import responses_rejected_total, responses_total
from onceview.common.state_machine import ACTIVE, REVOKED, VIEWED
from onceview.common.tracing import tracer
from onceview.services.responses.models import ViewerResponse
from onceview.services.responses.schemas import ResponseSubmission
from onceview.services.tokens import store
from onceview.services.tokens.service import serialize_response

INTEREST_LEVELS = ("interested", "maybe_later", "not_interested")
CONTACT_METHODS = ("email", "phone", "instagram")
TARGET_KINDS = (PROFILE, VIDEO)
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

FIELD_LIMITS = {"name": 100, "email": 255, "phone": 20, "instagram": 100}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_submission(submission: ResponseSubmission) -> dict:
    """Return normalized viewer fields or raise a field-level `ValidationError`."""

    fields = {
        "name": _clean(submission.name),
        "interest_level": _clean(submission.interest_level),
        "email": _clean(submission.email),
        "phone": _clean(submission.phone),
        "instagram": _clean(submission.instagram),
        "preferred_contact": _clean(submission.preferred_contact),
        "message": _clean(submission.message),
    }

    if fields["name"] is None:
        raise ValidationError("name", "Name is required")
    if fields["interest_level"] is None:
        raise ValidationError("interest_level", "Interest level is required")
    if fields["interest_level"] not in INTEREST_LEVELS:
        raise ValidationError("interest_level", "Interest level must be interested, maybe_later, or not_interested")
    for field, limit in FIELD_LIMITS.items():
        if fields[field] is not None and len(fields[field]) > limit:
            raise ValidationError(field, f"cannot exceed {limit} characters")
    if fields["email"] is not None and not EMAIL_RE.match(fields["email"]):
        raise ValidationError("email", "Invalid email format")
    if fields["preferred_contact"] is not None and fields["preferred_contact"] not in CONTACT_METHODS:
        raise ValidationError("preferred_contact", "Preferred contact method must be email, phone, or instagram")
    max_message = settings.response_message_max_length
    if fields["message"] is not None and len(fields["message"]) > max_message:
        raise ValidationError("message", f"Message cannot exceed {max_message} characters")

    if fields["interest_level"] == "interested" and not any(fields[m] for m in CONTACT_METHODS):
        raise ValidationError(
            "contact",
            "At least one contact method (email, phone, or Instagram) is required for interested responses",
        )
    preferred = fields["preferred_contact"]
    if preferred is not None and fields[preferred] is None:
        raise ValidationError(preferred, f"{preferred} is required when it is the preferred contact method")
    return fields


class ResponseService:
    """Accepts viewer responses for profile and video tokens."""

    def __init__(self, session_factory, notifications, service_name: str = "responses", clock=utcnow) -> None:
        self.session_factory = session_factory
        self.notifications = notifications
        self.service_name = service_name
        self.clock = clock

    def submit_response(
        self,
        target_kind: str,
        target_code: str,
        submission: ResponseSubmission,
        viewer_ip: str | None = None,
        viewer_user_agent: str | None = None,
    ) -> dict:
        """Validate and store one response, then notify the owner.

        Video tokens accept a single response; profile tokens accept many.
        Notification failure is reported in `warnings` and never undoes the
        stored response.
        """

        token_code_ctx.set(target_code)
        with tracer.start_as_current_span("responses.submit") as span:
            span.set_attribute("onceview.response.target_kind", str(target_kind))
            try:
                if target_kind not in TARGET_KINDS:
                    raise ValidationError("target_kind", "must be profile or video")
                if parse_token_code(target_code) != target_kind:
                    raise ValidationError("token", "Token prefix does not match target kind")
                fields = validate_submission(submission)
                if target_kind == VIDEO:
                    response, owner_id, target_key, target_id = self._store_video_response(
                        target_code, fields, viewer_ip, viewer_user_agent
                    )
                else:
                    response, owner_id, target_key, target_id = self._store_profile_response(
                        target_code, fields, viewer_ip, viewer_user_agent
                    )
            except OnceviewError as exc:
                responses_rejected_total.labels(service=self.service_name, reason=exc.error_code.lower()).inc()
                raise

        responses_total.labels(
            service=self.service_name,
            target_kind=target_kind,
            interest_level=response.interest_level,
        ).inc()
        logger.info("viewer response stored response_id=%s kind=%s", response.id, target_kind)

        warnings = []
        warning = self.notifications.dispatch(
            owner_id=owner_id,
            response_id=response.id,
            interest_level=response.interest_level,
            viewer_name=response.viewer_name,
            target_key=target_key,
            target_id=target_id,
        )
        if warning:
            warnings.append(warning)
        return {
            "id": response.id,
            "interest_level": response.interest_level,
            "success": True,
            "warnings": warnings,
        }

    def _build_response(self, response_type: str, fields: dict, viewer_ip, viewer_user_agent, **target) -> ViewerResponse:
        return ViewerResponse(
            response_type=response_type,
            interest_level=fields["interest_level"],
            viewer_name=fields["name"],
            viewer_email=fields["email"],
            viewer_phone=fields["phone"],
            viewer_instagram=fields["instagram"],
            preferred_contact_method=fields["preferred_contact"],
            message=fields["message"],
            ip_address=viewer_ip,
            user_agent=viewer_user_agent,
            responded_at=self.clock(),
            **target,
        )

    def _store_video_response(self, token_code: str, fields: dict, viewer_ip, viewer_user_agent):
        with unit_of_work(self.session_factory, "submit_video_response") as db:
            # The token row lock serializes competing first responses.
            token = store.get_token_by_code(db, token_code, lock=True)
            if token is None:
                raise TokenNotFound()
            if store.expire_if_due(db, token, self.clock()):
                db.commit()
                raise TokenExpired()
            if token.status == REVOKED:
                raise TokenRevoked()
            if token.status not in (ACTIVE, VIEWED):
                raise TokenExpired()

            existing = db.execute(
                select(ViewerResponse.id).where(ViewerResponse.video_token_id == token.id)
            ).first()
            if existing is not None:
                raise ResponseAlreadyExists()

            response = self._build_response("video", fields, viewer_ip, viewer_user_agent, video_token_id=token.id)
            try:
                with db.begin_nested():
                    db.add(response)
                    db.flush()
            except IntegrityError as exc:
                # Unique index on video_token_id caught a concurrent insert.
                raise ResponseAlreadyExists() from exc
            store.append_activity(
                db,
                "responded",
                token=token,
                ip_address=viewer_ip,
                user_agent=viewer_user_agent,
                details={"interest_level": response.interest_level},
            )
            db.commit()
            return response, token.owner_id, "token_id", token.id

    def _store_profile_response(self, profile_token: str, fields: dict, viewer_ip, viewer_user_agent):
        with unit_of_work(self.session_factory, "submit_profile_response") as db:
            profile = store.get_profile_by_token(db, profile_token)
            if profile is None:
                raise ProfileNotFound()
            response = self._build_response("profile", fields, viewer_ip, viewer_user_agent, profile_id=profile.id)
            db.add(response)
            db.commit()
            return response, profile.id, "profile_id", profile.id

    def has_response(self, token_code: str) -> dict:
        """Report whether a video token already carries its single response."""

        if parse_token_code(token_code) != VIDEO:
            raise TokenNotFound()
        with unit_of_work(self.session_factory, "check_response") as db:
            token = store.get_token_by_code(db, token_code, lock=True)
            if token is None:
                raise TokenNotFound()
            store.expire_if_due(db, token, self.clock())
            db.commit()
            existing = db.execute(
                select(ViewerResponse.id).where(ViewerResponse.video_token_id == token.id)
            ).first()
            return {"has_response": existing is not None}

    def list_profile_responses(self, owner_id: str) -> list[dict]:
        with unit_of_work(self.session_factory, "list_profile_responses") as db:
            rows = db.execute(
                select(ViewerResponse)
                .where(ViewerResponse.profile_id == owner_id, ViewerResponse.response_type == "profile")
                .order_by(ViewerResponse.responded_at.desc())
            ).scalars().all()
            return [serialize_response(row) for row in rows]
