"""Shared fixtures: per-test SQLite stores, a controllable clock, and services."""

import os
import tempfile
from datetime import timedelta

# Settings are read at import time, so the environment must be ready first.
_TEST_DIR = tempfile.mkdtemp(prefix="onceview-tests-")
os.environ["DATABASE_DSN"] = f"sqlite:///{_TEST_DIR}/api.db"
os.environ["API_KEY"] = "test-key"
os.environ["OTEL_ENABLED"] = "false"
os.environ["OUTBOX_ENABLED"] = "false"

import pytest  # noqa: E402
import redis  # noqa: E402

from onceview.common.db import Base, build_engine, build_session_factory, utcnow  # noqa: E402
from onceview.services.analytics.service import AnalyticsService  # noqa: E402
from onceview.services.notification import models as notification_models  # noqa: E402,F401
from onceview.services.notification.service import NotificationService  # noqa: E402
from onceview.services.responses import models as response_models  # noqa: E402,F401
from onceview.services.responses.service import ResponseService  # noqa: E402
from onceview.services.tokens import models as token_models  # noqa: E402,F401
from onceview.services.tokens.service import TokenService  # noqa: E402

VIDEO_URL = "https://cdn.example.com/videos/intro.mp4"


class FrozenClock:
    """Callable clock the services read instead of wall time."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


class FakeRedis:
    """In-memory stand-in for the hash commands the rate limiter uses."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.hashes: dict[str, dict] = {}

    def hmget(self, key, *fields):
        if self.fail:
            raise redis.ConnectionError("redis unavailable")
        values = self.hashes.get(key, {})
        return [values.get(field) for field in fields]

    def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})

    def expire(self, key, seconds):
        return True


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'onceview.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FrozenClock(utcnow())


@pytest.fixture
def notifications(session_factory):
    return NotificationService(session_factory)


@pytest.fixture
def tokens(session_factory, clock):
    return TokenService(session_factory, clock=clock)


@pytest.fixture
def responses(session_factory, notifications, clock):
    return ResponseService(session_factory, notifications, clock=clock)


@pytest.fixture
def analytics(session_factory, clock):
    return AnalyticsService(session_factory, clock=clock)


@pytest.fixture
def owner(tokens):
    return tokens.create_profile("owner-1", "owner@example.com", full_name="Alex Owner")


@pytest.fixture
def video(tokens, owner):
    return tokens.register_video(owner.id, VIDEO_URL, 20)


@pytest.fixture
def issued(tokens, owner, video):
    """A freshly issued, active video token for `owner`."""

    return tokens.issue_video_token(owner.id, video.id, private_label="Coffee shop")


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def api_client(monkeypatch, fake_redis):
    """TestClient over the real app, backed by a freshly reset SQLite file."""

    from fastapi.testclient import TestClient

    from onceview.common import db
    from onceview.services.api import main

    Base.metadata.drop_all(db.engine)
    Base.metadata.create_all(db.engine)
    monkeypatch.setattr(main, "rdb", fake_redis)
    with TestClient(main.app) as client:
        yield client
