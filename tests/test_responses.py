"""Viewer response validation, single-response rule, and notification hand-off."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select

from onceview.common.errors import ProfileNotFound, ResponseAlreadyExists, TokenExpired, ValidationError
from onceview.common.identifiers import PROFILE, VIDEO
from onceview.common.db import Base
from onceview.services.notification.service import NOTIFICATION_FAILED_WARNING
from onceview.services.responses.models import ViewerResponse
from onceview.services.responses.schemas import ResponseSubmission
from onceview.services.responses.service import validate_submission
from onceview.services.tokens.models import TokenActivityLog, VideoToken


def submission(**overrides):
    fields = {"name": "Sam", "interest_level": "interested", "email": "sam@example.com"}
    fields.update(overrides)
    return ResponseSubmission(**fields)


def test_camel_case_payload_is_accepted():
    parsed = ResponseSubmission.model_validate(
        {"name": "Sam", "interestLevel": "maybe_later", "preferredContact": "phone", "phone": "555-0100"}
    )
    fields = validate_submission(parsed)
    assert fields["interest_level"] == "maybe_later"
    assert fields["preferred_contact"] == "phone"


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"name": "   "}, "name"),
        ({"interest_level": None}, "interest_level"),
        ({"interest_level": "very"}, "interest_level"),
        ({"email": "not-an-email"}, "email"),
        ({"name": "x" * 101}, "name"),
        ({"phone": "1" * 21}, "phone"),
        ({"message": "m" * 501}, "message"),
        ({"preferred_contact": "fax"}, "preferred_contact"),
        ({"email": None}, "contact"),
        ({"email": "  ", "phone": ""}, "contact"),
        ({"preferred_contact": "instagram"}, "instagram"),
        ({"interest_level": "not_interested", "email": None, "preferred_contact": "phone"}, "phone"),
    ],
)
def test_invalid_submissions(overrides, field):
    with pytest.raises(ValidationError) as exc:
        validate_submission(submission(**overrides))
    assert exc.value.field == field


def test_non_interested_response_needs_no_contact():
    fields = validate_submission(submission(interest_level="not_interested", email=None))
    assert fields["email"] is None


def test_video_response_is_stored_and_owner_notified(responses, notifications, tokens, owner, issued, session_factory):
    tokens.redeem_video_token(issued["token_code"])

    result = responses.submit_response(VIDEO, issued["token_code"], submission(), viewer_ip="203.0.113.9")

    assert result["success"] is True
    assert result["warnings"] == []
    assert result["interest_level"] == "interested"
    assert responses.has_response(issued["token_code"]) == {"has_response": True}
    with session_factory() as db:
        stored = db.get(ViewerResponse, result["id"])
        responded = db.execute(
            select(TokenActivityLog).where(
                TokenActivityLog.video_token_id == issued["token_id"],
                TokenActivityLog.activity_type == "responded",
            )
        ).scalar_one()
    assert stored.video_token_id == issued["token_id"]
    assert stored.profile_id is None
    assert responded.details == {"interest_level": "interested"}

    inbox = notifications.list_notifications(owner.id)
    assert len(inbox) == 1
    assert inbox[0]["title"] == "New Response: Sam"
    assert inbox[0]["metadata"]["response_id"] == result["id"]
    assert inbox[0]["metadata"]["token_id"] == issued["token_id"]


def test_video_token_accepts_only_one_response(responses, issued):
    responses.submit_response(VIDEO, issued["token_code"], submission())

    with pytest.raises(ResponseAlreadyExists) as exc:
        responses.submit_response(VIDEO, issued["token_code"], submission(name="Someone else"))
    assert exc.value.status_code == 409


def test_concurrent_responses_keep_one(responses, issued, session_factory):
    def attempt(i):
        try:
            responses.submit_response(VIDEO, issued["token_code"], submission(name=f"Viewer {i}"))
            return "ok"
        except ResponseAlreadyExists:
            return "duplicate"

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(attempt, range(6)))

    assert outcomes.count("ok") == 1
    with session_factory() as db:
        rows = db.execute(
            select(ViewerResponse).where(ViewerResponse.video_token_id == issued["token_id"])
        ).scalars().all()
    assert len(rows) == 1


def test_response_on_expired_token_rejected(responses, issued, clock):
    clock.advance(days=5)

    with pytest.raises(TokenExpired):
        responses.submit_response(VIDEO, issued["token_code"], submission())


def test_response_check_applies_lazy_expiry(responses, issued, clock, session_factory):
    clock.advance(days=3, seconds=1)

    assert responses.has_response(issued["token_code"]) == {"has_response": False}

    with session_factory() as db:
        token = db.get(VideoToken, issued["token_id"])
        expired = db.execute(
            select(TokenActivityLog).where(
                TokenActivityLog.video_token_id == token.id, TokenActivityLog.activity_type == "expired"
            )
        ).scalars().all()
    assert token.status == "expired"
    assert len(expired) == 1


def test_profile_token_accepts_many_responses(responses, owner):
    responses.submit_response(PROFILE, owner.profile_token, submission(name="First"))
    responses.submit_response(PROFILE, owner.profile_token, submission(name="Second", interest_level="maybe_later"))

    listed = responses.list_profile_responses(owner.id)
    assert sorted(r["viewer_name"] for r in listed) == ["First", "Second"]


def test_target_kind_must_match_prefix(responses, owner, issued):
    with pytest.raises(ValidationError):
        responses.submit_response(PROFILE, issued["token_code"], submission())
    with pytest.raises(ValidationError):
        responses.submit_response(VIDEO, owner.profile_token, submission())


def test_unknown_profile_token(responses, owner):
    with pytest.raises(ProfileNotFound):
        responses.submit_response(PROFILE, "PRO-000000000000000000000000", submission())


def test_notification_failure_keeps_response(responses, issued, engine):
    Base.metadata.tables["notifications"].drop(engine)

    result = responses.submit_response(VIDEO, issued["token_code"], submission())

    assert result["success"] is True
    assert result["warnings"] == [NOTIFICATION_FAILED_WARNING]
    assert responses.has_response(issued["token_code"]) == {"has_response": True}
