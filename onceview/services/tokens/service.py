"""Token lifecycle logic.

Issues profile and video tokens, runs the atomic redeem-and-consume protocol,
serves profile reads, and exposes the owner's view of their tokens. Every
state change is a single transaction that also appends its activity entry.
"""

from math import ceil
from time import perf_counter

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from onceview.common.db import as_utc, unit_of_work, utcnow
from onceview.common.errors import (
    OnceviewError,
    ProfileAlreadyExists,
    ProfileNotFound,
    TokenAlreadyViewed,
    TokenExpired,
    TokenNotFound,
    ValidationError,
    VideoNotFound,
)
from onceview.common.identifiers import PROFILE, VIDEO, parse_token_code
from onceview.common.logging import logger, token_code_ctx
from onceview.common.metrics import (
    profile_views_total,
    redemption_latency_seconds,
    redemptions_total,
    tokens_issued_total,
)
from onceview.common.state_machine import ACTIVE, TOKEN_STATUSES, VIEWED, rejection_for, validate_transition
from onceview.common.tracing import tracer
from onceview.services.responses.models import ViewerResponse
from onceview.services.tokens import store
from onceview.services.tokens.models import (
    Profile,
    ProfilePhoto,
    ProfileSocialLink,
    TokenActivityLog,
    Video,
    VideoToken,
)

MIN_DURATION_SECONDS = 15
MAX_DURATION_SECONDS = 35
VIDEO_KINDS = ("default", "custom")
SORTABLE_FIELDS = ("created_at", "expires_at", "viewed_at", "status")
ONE_TIME_NOTICE = "This is a one-time viewing. Once you close this video, it will no longer be accessible."


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def serialize_video(video: Video | None) -> dict | None:
    if video is None:
        return None
    return {
        "id": video.id,
        "video_url": video.video_url,
        "thumbnail_url": video.thumbnail_url,
        "duration_seconds": video.duration_seconds,
        "kind": video.kind,
        "title": video.title,
        "created_at": _iso(video.created_at),
    }


def serialize_activity(entry: TokenActivityLog) -> dict:
    return {
        "id": entry.id,
        "activity_type": entry.activity_type,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "metadata": entry.details or {},
        "created_at": _iso(entry.created_at),
    }


def serialize_response(response: ViewerResponse) -> dict:
    return {
        "id": response.id,
        "response_type": response.response_type,
        "interest_level": response.interest_level,
        "viewer_name": response.viewer_name,
        "viewer_email": response.viewer_email,
        "viewer_phone": response.viewer_phone,
        "viewer_instagram": response.viewer_instagram,
        "preferred_contact_method": response.preferred_contact_method,
        "message": response.message,
        "responded_at": _iso(response.responded_at),
    }


def serialize_token(token: VideoToken, video=None, activity=None, responses=None) -> dict:
    """Owner-facing token view; includes the private label and notes."""

    return {
        "id": token.id,
        "token_code": token.token_code,
        "status": token.status,
        "created_at": _iso(token.created_at),
        "expires_at": _iso(token.expires_at),
        "viewed_at": _iso(token.viewed_at),
        "private_label": token.private_label,
        "private_notes": token.private_notes,
        "video": serialize_video(video),
        "activity_logs": [serialize_activity(entry) for entry in activity or []],
        "responses": [serialize_response(response) for response in responses or []],
    }


def _validate_video_fields(video_url, duration_seconds, kind, title) -> None:
    if not video_url:
        raise ValidationError("video_url", "is required")
    if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int):
        raise ValidationError("duration_seconds", "must be an integer")
    if not MIN_DURATION_SECONDS <= duration_seconds <= MAX_DURATION_SECONDS:
        raise ValidationError(
            "duration_seconds",
            f"must be between {MIN_DURATION_SECONDS} and {MAX_DURATION_SECONDS} seconds",
        )
    if kind not in VIDEO_KINDS:
        raise ValidationError("kind", "must be default or custom")
    if kind == "custom" and not (title or "").strip():
        raise ValidationError("title", "is required for custom videos")


def _profile_taken(db, owner_id: str, email: str) -> bool:
    return db.execute(
        select(Profile.id).where((Profile.id == owner_id) | (Profile.email == email))
    ).first() is not None


def _validate_private_fields(private_label, private_notes) -> None:
    if private_label is not None and len(private_label) > 255:
        raise ValidationError("private_label", "cannot exceed 255 characters")
    if private_notes is not None and len(private_notes) > 2000:
        raise ValidationError("private_notes", "cannot exceed 2000 characters")


class TokenService:
    """Owns profile/video token issuance and the video token state machine."""

    def __init__(self, session_factory, service_name: str = "tokens", clock=utcnow) -> None:
        self.session_factory = session_factory
        self.service_name = service_name
        self.clock = clock

    # -- owners and videos -------------------------------------------------

    def create_profile(self, owner_id: str, email: str, full_name: str | None = None, **fields) -> Profile:
        """Create the owner's profile and its permanent `PRO-` token."""

        if not owner_id:
            raise ValidationError("owner_id", "is required")
        if not email:
            raise ValidationError("email", "is required")
        with unit_of_work(self.session_factory, "create_profile") as db:
            if _profile_taken(db, owner_id, email):
                raise ProfileAlreadyExists()
            profile = Profile(id=owner_id, email=email, full_name=full_name, **fields)
            try:
                store.insert_with_unique_code(db, profile, "profile_token", PROFILE)
            except IntegrityError:
                # A concurrent signup claimed the id or email after the check above.
                if _profile_taken(db, owner_id, email):
                    raise ProfileAlreadyExists() from None
                raise
            db.commit()
        tokens_issued_total.labels(service=self.service_name, kind=PROFILE).inc()
        logger.info("profile created owner_id=%s", owner_id)
        return profile

    def register_video(
        self,
        owner_id: str,
        video_url: str,
        duration_seconds: int,
        kind: str = "default",
        thumbnail_url: str | None = None,
        title: str | None = None,
    ) -> Video:
        """Record an uploaded clip; a new default video retires the previous one."""

        _validate_video_fields(video_url, duration_seconds, kind, title)
        with unit_of_work(self.session_factory, "register_video") as db:
            # The owner row lock serializes default-video swaps for one owner.
            owner = db.execute(
                select(Profile).where(Profile.id == owner_id).with_for_update()
            ).scalar_one_or_none()
            if owner is None:
                raise ProfileNotFound()
            if kind == "default":
                db.execute(
                    update(Video)
                    .where(Video.owner_id == owner_id, Video.kind == "default", Video.is_active.is_(True))
                    .values(is_active=False)
                )
            video = Video(
                owner_id=owner_id,
                video_url=video_url,
                thumbnail_url=thumbnail_url,
                duration_seconds=duration_seconds,
                kind=kind,
                title=title,
                is_active=True,
                is_viewed=False,
            )
            db.add(video)
            db.commit()
        return video

    def retire_video(self, owner_id: str, video_id: str) -> Video:
        """Soft-deactivate one of the owner's videos."""

        with unit_of_work(self.session_factory, "retire_video") as db:
            video = db.get(Video, video_id)
            if video is None or video.owner_id != owner_id:
                raise VideoNotFound()
            video.is_active = False
            db.commit()
        return video

    # -- issuance ----------------------------------------------------------

    def _create_token(self, db, owner_id: str, video: Video, private_label, private_notes, days_valid) -> VideoToken:
        now = self.clock()
        token = VideoToken(
            status=ACTIVE,
            state_version=0,
            owner_id=owner_id,
            video_id=video.id,
            private_label=private_label,
            private_notes=private_notes,
            created_at=now,
            expires_at=store.compute_expiry(now, days_valid),
        )
        store.insert_with_unique_code(db, token, "token_code", VIDEO)
        store.append_activity(
            db,
            "created",
            token=token,
            details={"video_id": video.id, "expires_at": _iso(token.expires_at)},
        )
        return token

    def issue_video_token(
        self,
        owner_id: str,
        video_id: str,
        private_label: str | None = None,
        private_notes: str | None = None,
        days_valid: int | None = None,
    ) -> dict:
        """Issue a single-use token for an existing, active video of the owner."""

        _validate_private_fields(private_label, private_notes)
        store.compute_expiry(self.clock(), days_valid)
        with unit_of_work(self.session_factory, "issue_video_token") as db:
            video = db.get(Video, video_id)
            if video is None or video.owner_id != owner_id or not video.is_active:
                raise VideoNotFound()
            token = self._create_token(db, owner_id, video, private_label, private_notes, days_valid)
            db.commit()
        tokens_issued_total.labels(service=self.service_name, kind=VIDEO).inc()
        logger.info("video token issued token_id=%s video_id=%s", token.id, video.id)
        return {
            "token_id": token.id,
            "token_code": token.token_code,
            "video_id": video.id,
            "expires_at": _iso(token.expires_at),
        }

    def create_custom_video_with_token(
        self,
        owner_id: str,
        video_url: str,
        thumbnail_url: str | None,
        duration_seconds: int,
        title: str,
        private_label: str | None = None,
        private_notes: str | None = None,
        days_valid: int | None = None,
    ) -> dict:
        """Create a custom video and its token as one indivisible write.

        The video, token, and `created` activity entry share a transaction, so a
        failure while issuing the token leaves no orphaned video row.
        """

        _validate_video_fields(video_url, duration_seconds, "custom", title)
        _validate_private_fields(private_label, private_notes)
        store.compute_expiry(self.clock(), days_valid)
        with unit_of_work(self.session_factory, "create_custom_video_with_token") as db:
            if db.get(Profile, owner_id) is None:
                raise ProfileNotFound()
            video = Video(
                owner_id=owner_id,
                video_url=video_url,
                thumbnail_url=thumbnail_url,
                duration_seconds=duration_seconds,
                kind="custom",
                title=title,
                is_active=True,
                is_viewed=False,
            )
            db.add(video)
            db.flush()
            token = self._create_token(db, owner_id, video, private_label, private_notes, days_valid)
            db.commit()
        tokens_issued_total.labels(service=self.service_name, kind=VIDEO).inc()
        logger.info("custom video created with token video_id=%s token_id=%s", video.id, token.id)
        return {
            "video_id": video.id,
            "token_id": token.id,
            "token_code": token.token_code,
            "expires_at": _iso(token.expires_at),
            "token_url": f"/v/{token.token_code}",
        }

    # -- anonymous viewer operations ----------------------------------------

    def redeem_video_token(
        self, token_code: str, viewer_ip: str | None = None, viewer_user_agent: str | None = None
    ) -> dict:
        """Consume a video token exactly once and disclose its video.

        The row lock, status check, CAS write, activity entry, and video
        bookkeeping commit together; the payload is built only after commit.
        """

        token_code_ctx.set(token_code)
        started = perf_counter()
        with tracer.start_as_current_span("tokens.redeem") as span:
            try:
                if parse_token_code(token_code) != VIDEO:
                    raise TokenNotFound()
                payload = self._consume(token_code, viewer_ip, viewer_user_agent)
            except OnceviewError as exc:
                outcome = exc.error_code.lower()
                span.set_attribute("onceview.redemption.outcome", outcome)
                redemptions_total.labels(service=self.service_name, outcome=outcome).inc()
                logger.info("redemption rejected outcome=%s", outcome)
                raise
            finally:
                redemption_latency_seconds.labels(service=self.service_name).observe(perf_counter() - started)
            span.set_attribute("onceview.redemption.outcome", "success")
        redemptions_total.labels(service=self.service_name, outcome="success").inc()
        logger.info("video token redeemed token_id=%s", payload["token"]["id"])
        return payload

    def _consume(self, token_code: str, viewer_ip, viewer_user_agent) -> dict:
        with unit_of_work(self.session_factory, "redeem_video_token") as db:
            token = store.get_token_by_code(db, token_code, lock=True)
            if token is None:
                raise TokenNotFound()
            now = self.clock()
            if store.expire_if_due(db, token, now):
                # Persist the flip even though this redemption is rejected.
                db.commit()
                raise TokenExpired()
            if token.status != ACTIVE:
                raise rejection_for(token.status)

            validate_transition(token.status, VIEWED)
            current_version = token.state_version
            result = db.execute(
                update(VideoToken)
                .where(
                    VideoToken.id == token.id,
                    VideoToken.status == ACTIVE,
                    VideoToken.state_version == current_version,
                )
                .values(
                    status=VIEWED,
                    state_version=current_version + 1,
                    viewed_at=now,
                    viewer_ip=viewer_ip,
                    viewer_user_agent=viewer_user_agent,
                )
            )
            if result.rowcount != 1:
                # Another redemption committed first.
                raise TokenAlreadyViewed()
            token.status = VIEWED
            token.state_version = current_version + 1
            token.viewed_at = now

            store.append_activity(
                db,
                "viewed",
                token=token,
                ip_address=viewer_ip,
                user_agent=viewer_user_agent,
            )
            db.execute(
                update(Video)
                .where(Video.id == token.video_id, Video.is_viewed.is_(False))
                .values(is_viewed=True, first_viewed_at=now, viewer_token_id=token.id)
            )
            video = db.get(Video, token.video_id)
            owner = db.get(Profile, token.owner_id)
            video_payload = serialize_video(video)
            owner_name = owner.full_name if owner is not None else None
            db.commit()

        return {
            "token": {"id": token.id, "token_code": token.token_code},
            "video": video_payload,
            "owner_display_name": owner_name,
            "message": ONE_TIME_NOTICE,
        }

    def read_profile_by_token(
        self, profile_token: str, viewer_ip: str | None = None, viewer_user_agent: str | None = None
    ) -> dict:
        """Return the public profile view and log a `viewed` entry.

        Profile tokens are reusable; the read never changes token state.
        """

        token_code_ctx.set(profile_token)
        if parse_token_code(profile_token) != PROFILE:
            raise ProfileNotFound()
        with unit_of_work(self.session_factory, "read_profile_by_token") as db:
            profile = store.get_profile_by_token(db, profile_token)
            if profile is None:
                raise ProfileNotFound()
            photos = db.execute(
                select(ProfilePhoto).where(ProfilePhoto.owner_id == profile.id).order_by(ProfilePhoto.photo_order)
            ).scalars().all()
            links = db.execute(
                select(ProfileSocialLink)
                .where(ProfileSocialLink.owner_id == profile.id)
                .order_by(ProfileSocialLink.platform)
            ).scalars().all()
            default_video = db.execute(
                select(Video)
                .where(Video.owner_id == profile.id, Video.kind == "default", Video.is_active.is_(True))
                .order_by(Video.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            store.append_activity(
                db,
                "viewed",
                profile_id=profile.id,
                ip_address=viewer_ip,
                user_agent=viewer_user_agent,
            )
            db.commit()
        profile_views_total.labels(service=self.service_name).inc()
        return {
            "profile": {
                "id": profile.id,
                "full_name": profile.full_name,
                "age": profile.age,
                "city": profile.city,
                "job_title": profile.job_title,
                "hobbies": profile.hobbies,
                "bio": profile.bio,
            },
            "photos": [
                {"id": p.id, "photo_url": p.photo_url, "photo_order": p.photo_order, "is_primary": p.is_primary}
                for p in photos
            ],
            "social_links": [{"platform": s.platform, "username": s.username, "url": s.url} for s in links],
            "default_video": serialize_video(default_video),
        }

    def get_token_status(self, token_code: str) -> dict:
        """Viewer-safe status probe for a video token; applies lazy expiry."""

        if parse_token_code(token_code) != VIDEO:
            raise TokenNotFound()
        with unit_of_work(self.session_factory, "get_token_status") as db:
            token = store.get_token_by_code(db, token_code, lock=True)
            if token is None:
                raise TokenNotFound()
            store.expire_if_due(db, token, self.clock())
            db.commit()
        return {"status": token.status, "expires_at": _iso(token.expires_at)}

    # -- owner views -------------------------------------------------------

    def preview_token(self, owner_id: str, token_code: str) -> dict:
        """Owner's view of one token; never consumes it."""

        parse_token_code(token_code)
        with unit_of_work(self.session_factory, "preview_token") as db:
            token = store.get_token_by_code(db, token_code, lock=True)
            if token is None or token.owner_id != owner_id:
                raise TokenNotFound()
            store.expire_if_due(db, token, self.clock())
            db.commit()
            video = db.get(Video, token.video_id)
            activity = db.execute(
                select(TokenActivityLog)
                .where(TokenActivityLog.video_token_id == token.id)
                .order_by(TokenActivityLog.created_at)
            ).scalars().all()
            responses = db.execute(
                select(ViewerResponse).where(ViewerResponse.video_token_id == token.id)
            ).scalars().all()
            return serialize_token(token, video, activity, responses)

    def list_owner_tokens(
        self,
        owner_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_direction: str = "desc",
    ) -> dict:
        """Paginated owner token listing with video, activity, and responses."""

        if status is not None and status not in TOKEN_STATUSES:
            raise ValidationError("status", f"must be one of {', '.join(TOKEN_STATUSES)}")
        if page < 1:
            raise ValidationError("page", "must be a positive integer")
        if not 1 <= limit <= 100:
            raise ValidationError("limit", "must be between 1 and 100")
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError("sort_by", f"must be one of {', '.join(SORTABLE_FIELDS)}")
        if sort_direction not in ("asc", "desc"):
            raise ValidationError("sort_direction", "must be asc or desc")

        with unit_of_work(self.session_factory, "list_owner_tokens") as db:
            store.expire_due_tokens(db, owner_id, self.clock())
            db.commit()

            filters = [VideoToken.owner_id == owner_id]
            if status is not None:
                filters.append(VideoToken.status == status)
            sort_column = getattr(VideoToken, sort_by)
            order = sort_column.asc() if sort_direction == "asc" else sort_column.desc()
            tokens = db.execute(
                select(VideoToken)
                .where(*filters)
                .order_by(order, VideoToken.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()
            total = db.execute(select(func.count()).select_from(VideoToken).where(*filters)).scalar_one()

            token_ids = [t.id for t in tokens]
            videos, activity_by_token, responses_by_token = {}, {}, {}
            if token_ids:
                video_ids = {t.video_id for t in tokens}
                for video in db.execute(select(Video).where(Video.id.in_(video_ids))).scalars():
                    videos[video.id] = video
                for entry in db.execute(
                    select(TokenActivityLog)
                    .where(TokenActivityLog.video_token_id.in_(token_ids))
                    .order_by(TokenActivityLog.created_at)
                ).scalars():
                    activity_by_token.setdefault(entry.video_token_id, []).append(entry)
                for response in db.execute(
                    select(ViewerResponse).where(ViewerResponse.video_token_id.in_(token_ids))
                ).scalars():
                    responses_by_token.setdefault(response.video_token_id, []).append(response)

            return {
                "tokens": [
                    serialize_token(
                        t,
                        videos.get(t.video_id),
                        activity_by_token.get(t.id),
                        responses_by_token.get(t.id),
                    )
                    for t in tokens
                ],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "pages": ceil(total / limit) if total else 0,
                },
            }
