"""Prometheus metric definitions shared across onceview services."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


tokens_issued_total = Counter("tokens_issued_total", "Total tokens issued", ["service", "kind"])
redemptions_total = Counter(
    "redemptions_total",
    "Video token redemption attempts by outcome",
    ["service", "outcome"],
)
redemption_latency_seconds = Histogram(
    "redemption_latency_seconds",
    "Redeem-and-consume transaction latency seconds",
    ["service"],
)
profile_views_total = Counter("profile_views_total", "Total profile reads by token", ["service"])
responses_total = Counter(
    "responses_total",
    "Accepted viewer responses",
    ["service", "target_kind", "interest_level"],
)
responses_rejected_total = Counter(
    "responses_rejected_total",
    "Rejected viewer responses",
    ["service", "reason"],
)
notification_failures_total = Counter(
    "notification_failures_total",
    "Notification inserts that failed after a response was stored",
    ["service"],
)
identifier_collisions_total = Counter(
    "identifier_collisions_total",
    "Generated token codes that collided with an existing code",
    ["service", "kind"],
)
tokens_expired_total = Counter(
    "tokens_expired_total",
    "Tokens flipped to expired by lazy expiry",
    ["service"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
outbox_pending_total = Gauge(
    "outbox_pending_total",
    "Current count of outbox events not yet sent",
    ["service"],
)
outbox_oldest_pending_age_seconds = Gauge(
    "outbox_oldest_pending_age_seconds",
    "Age in seconds of the oldest pending outbox event",
    ["service"],
)
rate_limited_total = Counter("rate_limited_total", "Requests rejected by rate limiter", ["service"])


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
