"""Profile, video, and token issuance including the composite custom-video path."""

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from onceview.common import identifiers
from onceview.common.errors import (
    IdentifierExhausted,
    ProfileAlreadyExists,
    ProfileNotFound,
    TokenNotFound,
    ValidationError,
    VideoNotFound,
)
from onceview.services.tokens import store
from onceview.services.tokens.models import Profile, TokenActivityLog, Video, VideoToken

from conftest import VIDEO_URL


def _count(session_factory, model, *where):
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(model).where(*where)).scalar_one()


def test_profile_gets_permanent_profile_token(owner):
    assert re.fullmatch(r"PRO-[0-9a-f]{24}", owner.profile_token)


def test_duplicate_profile_rejected(tokens, owner):
    with pytest.raises(ProfileAlreadyExists):
        tokens.create_profile(owner.id, "other@example.com")
    with pytest.raises(ProfileAlreadyExists):
        tokens.create_profile("owner-2", "owner@example.com")


def test_profile_lost_to_concurrent_signup_is_a_conflict(tokens, session_factory, monkeypatch):
    insert = store.insert_with_unique_code

    def rival_signs_up_first(db, row, code_attr, kind):
        db.add(Profile(id="owner-9", email=row.email, profile_token="PRO-0000000000000000000000ff"))
        db.flush()
        return insert(db, row, code_attr, kind)

    monkeypatch.setattr(store, "insert_with_unique_code", rival_signs_up_first)

    with pytest.raises(ProfileAlreadyExists):
        tokens.create_profile("owner-1", "owner@example.com")
    assert _count(session_factory, Profile) == 0


def test_issue_defaults_to_three_days(issued, clock, session_factory):
    assert re.fullmatch(r"VID-[0-9a-f]{20}", issued["token_code"])
    assert issued["expires_at"] == (clock() + timedelta(days=3)).isoformat()

    with session_factory() as db:
        token = db.get(VideoToken, issued["token_id"])
        assert token.status == "active"
        assert token.private_label == "Coffee shop"
        created = db.execute(
            select(TokenActivityLog).where(TokenActivityLog.video_token_id == token.id)
        ).scalar_one()
    assert created.activity_type == "created"
    assert created.details["video_id"] == issued["video_id"]


@pytest.mark.parametrize("days_valid", [0, -1, 31, True])
def test_days_valid_out_of_range_creates_nothing(tokens, owner, video, session_factory, days_valid):
    with pytest.raises(ValidationError) as exc:
        tokens.issue_video_token(owner.id, video.id, days_valid=days_valid)

    assert exc.value.field == "days_valid"
    assert _count(session_factory, VideoToken) == 0


def test_days_valid_upper_bound_accepted(tokens, owner, video, clock):
    result = tokens.issue_video_token(owner.id, video.id, days_valid=30)
    assert result["expires_at"] == (clock() + timedelta(days=30)).isoformat()


def test_issue_requires_owned_active_video(tokens, owner, video):
    other = tokens.create_profile("owner-2", "second@example.com")
    with pytest.raises(VideoNotFound):
        tokens.issue_video_token(other.id, video.id)

    tokens.retire_video(owner.id, video.id)
    with pytest.raises(VideoNotFound):
        tokens.issue_video_token(owner.id, video.id)


def test_new_default_video_retires_previous(tokens, owner, video, session_factory):
    replacement = tokens.register_video(owner.id, "https://cdn.example.com/videos/new.mp4", 30)

    with session_factory() as db:
        assert db.get(Video, video.id).is_active is False
        assert db.get(Video, replacement.id).is_active is True


def test_concurrent_default_uploads_leave_one_active(tokens, owner, video, session_factory):
    urls = [f"https://cdn.example.com/videos/take-{i}.mp4" for i in range(6)]

    with ThreadPoolExecutor(max_workers=6) as pool:
        uploaded = list(pool.map(lambda url: tokens.register_video(owner.id, url, 20), urls))

    active = _count(session_factory, Video, Video.kind == "default", Video.is_active.is_(True))
    assert active == 1
    assert len(uploaded) == 6


def test_second_active_default_video_is_refused_by_the_store(owner, video, session_factory):
    with session_factory() as db:
        db.add(Video(owner_id=owner.id, video_url=VIDEO_URL, duration_seconds=20, kind="default", is_active=True))
        with pytest.raises(IntegrityError):
            db.flush()


@pytest.mark.parametrize("duration", [14, 36])
def test_video_duration_bounds(tokens, owner, duration):
    with pytest.raises(ValidationError):
        tokens.register_video(owner.id, VIDEO_URL, duration)


def test_register_video_requires_profile(tokens):
    with pytest.raises(ProfileNotFound):
        tokens.register_video("nobody", VIDEO_URL, 20)


def test_custom_video_with_token_is_created_together(tokens, owner, session_factory):
    result = tokens.create_custom_video_with_token(
        owner.id,
        video_url="https://cdn.example.com/videos/custom.mp4",
        thumbnail_url=None,
        duration_seconds=25,
        title="For Jamie",
        private_label="Jamie",
        days_valid=7,
    )

    assert result["token_url"] == f"/v/{result['token_code']}"
    with session_factory() as db:
        video = db.get(Video, result["video_id"])
        token = db.get(VideoToken, result["token_id"])
    assert video.kind == "custom"
    assert token.video_id == video.id


def test_custom_video_rolls_back_when_token_issuance_fails(tokens, owner, issued, session_factory, monkeypatch):
    # Every candidate collides with an existing code, so issuance exhausts its retries.
    monkeypatch.setattr(identifiers, "generate_token_code", lambda kind: issued["token_code"])

    with pytest.raises(IdentifierExhausted):
        tokens.create_custom_video_with_token(
            owner.id,
            video_url="https://cdn.example.com/videos/custom.mp4",
            thumbnail_url=None,
            duration_seconds=25,
            title="Never stored",
        )

    assert _count(session_factory, Video, Video.kind == "custom") == 0
    assert _count(session_factory, VideoToken) == 1


def test_custom_video_requires_title(tokens, owner):
    with pytest.raises(ValidationError) as exc:
        tokens.create_custom_video_with_token(owner.id, VIDEO_URL, None, 20, "   ")
    assert exc.value.field == "title"


def test_owner_listing_paginates_and_expires(tokens, owner, video, clock):
    first = tokens.issue_video_token(owner.id, video.id, days_valid=1)
    clock.advance(hours=1)
    second = tokens.issue_video_token(owner.id, video.id, days_valid=10)
    tokens.redeem_video_token(second["token_code"])
    clock.advance(days=2)

    listing = tokens.list_owner_tokens(owner.id, limit=1, sort_by="created_at", sort_direction="asc")
    assert listing["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert listing["tokens"][0]["id"] == first["token_id"]
    assert listing["tokens"][0]["status"] == "expired"
    assert [e["activity_type"] for e in listing["tokens"][0]["activity_logs"]] == ["created", "expired"]

    viewed = tokens.list_owner_tokens(owner.id, status="viewed")
    assert [t["id"] for t in viewed["tokens"]] == [second["token_id"]]


@pytest.mark.parametrize(
    "kwargs",
    [{"page": 0}, {"limit": 0}, {"limit": 101}, {"sort_by": "token_code"}, {"sort_direction": "up"}, {"status": "used"}],
)
def test_owner_listing_rejects_bad_query(tokens, owner, kwargs):
    with pytest.raises(ValidationError):
        tokens.list_owner_tokens(owner.id, **kwargs)


def test_preview_is_owner_only_and_does_not_consume(tokens, owner, issued):
    preview = tokens.preview_token(owner.id, issued["token_code"])
    assert preview["status"] == "active"
    assert preview["private_label"] == "Coffee shop"

    tokens.create_profile("owner-2", "second@example.com")
    with pytest.raises(TokenNotFound):
        tokens.preview_token("owner-2", issued["token_code"])

    assert tokens.redeem_video_token(issued["token_code"])["token"]["id"] == issued["token_id"]
