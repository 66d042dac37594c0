"""Public HTTP surface for profile/video tokens.

Anonymous viewer endpoints are rate limited per client address with a Redis
token bucket. The address is the socket peer; behind a reverse proxy, run
uvicorn with `--proxy-headers --forwarded-allow-ips=<proxy>` so only the
trusted proxy can rewrite it.

Owner endpoints trust the identity provider's proxy, which forwards the
verified subject in `x-owner-id` alongside the shared API key.
"""

import asyncio
from contextlib import asynccontextmanager
from time import perf_counter, time
from uuid import uuid4

import redis
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from onceview.common.config import settings
from onceview.common.db import SessionLocal
from onceview.common.errors import OnceviewError
from onceview.common.identifiers import PROFILE, parse_token_code
from onceview.common.logging import configure_logging, logger, owner_id_ctx, trace_id_ctx
from onceview.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    rate_limited_total,
)
from onceview.common.startup import log_startup_config
from onceview.common.tracing import instrument_app, setup_tracing
from onceview.services.analytics.service import AnalyticsService
from onceview.services.notification.service import NotificationService
from onceview.services.responses.schemas import ResponseSubmission
from onceview.services.responses.service import ResponseService
from onceview.services.tokens.schemas import (
    CustomVideoRequest,
    IssueTokenRequest,
    ProfileCreateRequest,
    VideoRegisterRequest,
)
from onceview.services.tokens.service import TokenService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings,
    [
        "database_dsn",
        "redis_url",
        "kafka_bootstrap_servers",
        "rate_limit_per_minute",
        "token_max_days_valid",
        "outbox_enabled",
        "api_key",
    ],
)
notifications = NotificationService(SessionLocal)
tokens = TokenService(SessionLocal)
responses = ResponseService(SessionLocal, notifications)
analytics = AnalyticsService(SessionLocal)
rdb = redis.Redis.from_url(settings.redis_url, decode_responses=True)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the notification outbox publisher with the app lifecycle."""

    publisher_task = None
    if settings.outbox_enabled:
        publisher_task = asyncio.create_task(notifications.outbox_publisher())
    yield
    if publisher_task is not None:
        publisher_task.cancel()
        await notifications.kafka.close()


app = FastAPI(title="onceview API", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.exception_handler(OnceviewError)
async def onceview_error_handler(_: Request, exc: OnceviewError):
    """Translate typed service errors into JSON bodies with stable codes."""

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message, "details": exc.details},
    )


def client_ip(request: Request) -> str | None:
    # X-Forwarded-For is honoured only through uvicorn's ProxyHeadersMiddleware.
    return request.client.host if request.client else None


def enforce_token_bucket(key: str) -> None:
    # Redis token bucket (capacity = refill rate = limit per minute).
    bucket_key = f"tokenbucket:{key}"
    now = time()
    capacity = float(settings.rate_limit_per_minute)
    refill_per_sec = capacity / 60.0

    try:
        values = rdb.hmget(bucket_key, "tokens", "updated_at")
        tokens_left = float(values[0]) if values[0] is not None else capacity
        updated_at = float(values[1]) if values[1] is not None else now
        elapsed = max(0.0, now - updated_at)
        tokens_left = min(capacity, tokens_left + elapsed * refill_per_sec)
        allowed = tokens_left >= 1.0
        if allowed:
            tokens_left -= 1.0
        rdb.hset(bucket_key, mapping={"tokens": tokens_left, "updated_at": now})
        rdb.expire(bucket_key, 120)
    except redis.RedisError as exc:
        logger.warning("rate_limiter_unavailable: %s", exc)
        return
    if not allowed:
        rate_limited_total.labels(service=settings.service_name).inc()
        raise HTTPException(status_code=429, detail="rate limit exceeded")


def viewer_context(request: Request) -> dict:
    """Rate-limit one anonymous request and return its origin metadata."""

    ip = client_ip(request)
    enforce_token_bucket(f"viewer:{ip or 'unknown'}")
    return {"viewer_ip": ip, "viewer_user_agent": request.headers.get("user-agent")}


def require_owner(
    x_api_key: str | None = Header(default=None),
    x_owner_id: str | None = Header(default=None),
) -> str:
    """Return the verified owner id forwarded by the identity provider."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="owner identity required")
    owner_id_ctx.set(x_owner_id)
    return x_owner_id


# -- owner endpoints (declared before `/tokens/{token_code}` routes) ---------


@app.get("/tokens/metrics")
def owner_metrics(days: int = 30, owner_id: str = Depends(require_owner)):
    """Funnel, status counts, and daily activity for the calling owner."""

    return analytics.get_owner_metrics(owner_id, days=days)


@app.get("/tokens/preview/{token_code}")
def preview_token(token_code: str, owner_id: str = Depends(require_owner)):
    return tokens.preview_token(owner_id, token_code)


@app.get("/tokens")
def list_tokens(
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    owner_id: str = Depends(require_owner),
):
    return tokens.list_owner_tokens(
        owner_id,
        status=status,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )


@app.post("/tokens/issue", status_code=201)
def issue_token(req: IssueTokenRequest, owner_id: str = Depends(require_owner)):
    """Issue a single-use token for one of the owner's videos."""

    return tokens.issue_video_token(
        owner_id,
        req.video_id,
        private_label=req.private_label,
        private_notes=req.private_notes,
        days_valid=req.days_valid,
    )


@app.post("/tokens/custom-video", status_code=201)
def create_custom_video(req: CustomVideoRequest, owner_id: str = Depends(require_owner)):
    """Create a custom video and its token in one step."""

    return tokens.create_custom_video_with_token(
        owner_id,
        video_url=req.video_url,
        thumbnail_url=req.thumbnail_url,
        duration_seconds=req.duration_seconds,
        title=req.title,
        private_label=req.private_label,
        private_notes=req.private_notes,
        days_valid=req.days_valid,
    )


@app.post("/profiles", status_code=201)
def create_profile(req: ProfileCreateRequest, owner_id: str = Depends(require_owner)):
    profile = tokens.create_profile(owner_id, req.email, full_name=req.full_name)
    return {"id": profile.id, "profile_token": profile.profile_token}


@app.post("/videos", status_code=201)
def register_video(req: VideoRegisterRequest, owner_id: str = Depends(require_owner)):
    video = tokens.register_video(
        owner_id,
        video_url=req.video_url,
        duration_seconds=req.duration_seconds,
        kind=req.kind,
        thumbnail_url=req.thumbnail_url,
        title=req.title,
    )
    return {"id": video.id, "kind": video.kind, "is_active": video.is_active}


@app.delete("/videos/{video_id}")
def retire_video(video_id: str, owner_id: str = Depends(require_owner)):
    video = tokens.retire_video(owner_id, video_id)
    return {"id": video.id, "is_active": video.is_active}


@app.get("/responses/profile")
def profile_responses(owner_id: str = Depends(require_owner)):
    return {"responses": responses.list_profile_responses(owner_id)}


@app.get("/notifications")
def list_notifications(unread_only: bool = False, owner_id: str = Depends(require_owner)):
    return {"notifications": notifications.list_notifications(owner_id, unread_only=unread_only)}


@app.post("/notifications/{notification_id}/read")
def read_notification(notification_id: str, owner_id: str = Depends(require_owner)):
    return notifications.mark_read(owner_id, notification_id)


# -- anonymous viewer endpoints ----------------------------------------------


@app.get("/tokens/{token_code}")
def open_token(token_code: str, viewer: dict = Depends(viewer_context)):
    """Profile codes return the public profile; video codes return status only."""

    if parse_token_code(token_code) == PROFILE:
        return tokens.read_profile_by_token(token_code, **viewer)
    return tokens.get_token_status(token_code)


@app.get("/tokens/{token_code}/video")
def redeem_video(token_code: str, viewer: dict = Depends(viewer_context)):
    """One-time video disclosure; every later call is rejected."""

    return tokens.redeem_video_token(token_code, **viewer)


@app.post("/tokens/{token_code}/response", status_code=201)
def submit_response(token_code: str, submission: ResponseSubmission, viewer: dict = Depends(viewer_context)):
    return responses.submit_response(parse_token_code(token_code), token_code, submission, **viewer)


@app.get("/tokens/{token_code}/response/check")
def check_response(token_code: str, _: dict = Depends(viewer_context)):
    return responses.has_response(token_code)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
