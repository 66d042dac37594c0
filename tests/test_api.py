"""End-to-end HTTP checks against the FastAPI app with a fake Redis."""

from onceview.common.config import settings

from conftest import VIDEO_URL, FakeRedis

OWNER_HEADERS = {"x-api-key": "test-key", "x-owner-id": "owner-1"}


def _bootstrap_owner(client):
    resp = client.post("/profiles", json={"email": "owner@example.com", "fullName": "Alex Owner"}, headers=OWNER_HEADERS)
    assert resp.status_code == 201
    video = client.post("/videos", json={"videoUrl": VIDEO_URL, "durationSeconds": 20}, headers=OWNER_HEADERS)
    assert video.status_code == 201
    return resp.json(), video.json()


def test_health_and_metrics(api_client):
    assert api_client.get("/health").json() == {"ok": True}
    metrics = api_client.get("/metrics")
    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text


def test_owner_routes_require_key_and_identity(api_client):
    assert api_client.get("/tokens").status_code == 401
    assert api_client.get("/tokens", headers={"x-api-key": "wrong", "x-owner-id": "owner-1"}).status_code == 401
    assert api_client.get("/tokens", headers={"x-api-key": "test-key"}).status_code == 401


def test_single_view_flow(api_client):
    profile, video = _bootstrap_owner(api_client)

    issued = api_client.post("/tokens/issue", json={"videoId": video["id"], "privateLabel": "Gym"}, headers=OWNER_HEADERS)
    assert issued.status_code == 201
    code = issued.json()["token_code"]

    assert api_client.get(f"/tokens/{code}").json()["status"] == "active"

    first = api_client.get(f"/tokens/{code}/video", headers={"x-forwarded-for": "203.0.113.5, 10.0.0.1"})
    assert first.status_code == 200
    assert first.json()["video"]["video_url"] == VIDEO_URL

    second = api_client.get(f"/tokens/{code}/video")
    assert second.status_code == 410
    assert second.json()["error"] == "TOKEN_ALREADY_VIEWED"
    assert second.json()["message"] == "This video has already been viewed and is no longer available"

    body = {"name": "Sam", "interestLevel": "interested", "email": "sam@example.com"}
    assert api_client.post(f"/tokens/{code}/response", json=body).status_code == 201
    duplicate = api_client.post(f"/tokens/{code}/response", json=body)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "RESPONSE_ALREADY_EXISTS"
    assert api_client.get(f"/tokens/{code}/response/check").json() == {"has_response": True}

    preview = api_client.get(f"/tokens/preview/{code}", headers=OWNER_HEADERS).json()
    assert preview["status"] == "viewed"
    assert len(preview["responses"]) == 1

    inbox = api_client.get("/notifications", headers=OWNER_HEADERS).json()["notifications"]
    assert inbox[0]["title"] == "New Response: Sam"
    read = api_client.post(f"/notifications/{inbox[0]['id']}/read", headers=OWNER_HEADERS)
    assert read.json()["is_read"] is True

    metrics = api_client.get("/tokens/metrics", headers=OWNER_HEADERS).json()
    assert metrics["funnel"]["video_views"] == 1
    assert metrics["funnel"]["interested_responses"] == 1


def test_profile_token_read_and_responses(api_client):
    profile, _ = _bootstrap_owner(api_client)
    code = profile["profile_token"]

    view = api_client.get(f"/tokens/{code}")
    assert view.status_code == 200
    assert view.json()["profile"]["full_name"] == "Alex Owner"

    body = {"name": "Kim", "interestLevel": "not_interested"}
    assert api_client.post(f"/tokens/{code}/response", json=body).status_code == 201
    assert api_client.post(f"/tokens/{code}/response", json=body).status_code == 201
    listed = api_client.get("/responses/profile", headers=OWNER_HEADERS).json()["responses"]
    assert len(listed) == 2


def test_error_mapping(api_client):
    _bootstrap_owner(api_client)

    malformed = api_client.get("/tokens/bogus")
    assert malformed.status_code == 422
    assert malformed.json()["details"]["field"] == "token"

    missing = api_client.get("/tokens/VID-0123456789abcdef0123/video")
    assert missing.status_code == 404
    assert missing.json()["error"] == "TOKEN_NOT_FOUND"

    invalid = api_client.post("/tokens/VID-0123456789abcdef0123/response", json={"name": "Sam", "interestLevel": "interested"})
    assert invalid.status_code == 422
    assert invalid.json()["details"]["field"] == "contact"

    out_of_range = api_client.get("/tokens", params={"limit": 500}, headers=OWNER_HEADERS)
    assert out_of_range.status_code == 422

    too_long = api_client.post("/tokens/issue", json={"videoId": "x", "daysValid": 45}, headers=OWNER_HEADERS)
    assert too_long.status_code == 422
    assert too_long.json()["details"]["field"] == "days_valid"


def test_custom_video_endpoint(api_client):
    _bootstrap_owner(api_client)

    resp = api_client.post(
        "/tokens/custom-video",
        json={"videoUrl": "https://cdn.example.com/videos/c.mp4", "durationSeconds": 30, "title": "For Jamie"},
        headers=OWNER_HEADERS,
    )

    assert resp.status_code == 201
    assert resp.json()["token_url"] == f"/v/{resp.json()['token_code']}"
    listing = api_client.get("/tokens", headers=OWNER_HEADERS).json()
    assert listing["pagination"]["total"] == 1
    assert listing["tokens"][0]["video"]["kind"] == "custom"


def test_viewer_endpoints_are_rate_limited(api_client, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_per_minute", 2)

    statuses = [api_client.get("/tokens/VID-0123456789abcdef0123").status_code for _ in range(3)]

    assert statuses == [404, 404, 429]


def test_rate_limiter_fails_open(api_client, monkeypatch):
    from onceview.services.api import main

    monkeypatch.setattr(main, "rdb", FakeRedis(fail=True))

    assert api_client.get("/tokens/VID-0123456789abcdef0123").status_code == 404


def test_forwarded_for_header_neither_resets_bucket_nor_sets_viewer_ip(api_client, monkeypatch):
    _, video = _bootstrap_owner(api_client)
    code = api_client.post("/tokens/issue", json={"videoId": video["id"]}, headers=OWNER_HEADERS).json()["token_code"]
    monkeypatch.setattr(settings, "rate_limit_per_minute", 2)

    redeemed = api_client.get(f"/tokens/{code}/video", headers={"x-forwarded-for": "10.0.0.1"})
    rotated = [
        api_client.get("/tokens/VID-0123456789abcdef0123", headers={"x-forwarded-for": f"10.0.0.{i}"}).status_code
        for i in range(2, 5)
    ]

    assert redeemed.status_code == 200
    assert rotated == [404, 429, 429]
    preview = api_client.get(f"/tokens/preview/{code}", headers=OWNER_HEADERS).json()
    [viewed] = [e for e in preview["activity_logs"] if e["activity_type"] == "viewed"]
    assert viewed["ip_address"] == "testclient"


def test_response_check_is_rate_limited(api_client, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_per_minute", 1)

    statuses = [api_client.get("/tokens/VID-0123456789abcdef0123/response/check").status_code for _ in range(2)]

    assert statuses == [404, 429]
