"""Prometheus metric definitions shared by the app and services"""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "taskauth_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "taskauth_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
AUTH_EVENTS = Counter(
    "taskauth_auth_events_total",
    "Authentication and account lifecycle events",
    ["event", "outcome"],
)
SWEEPER_UP_GAUGE = Gauge("taskauth_token_sweeper_up", "Token sweeper liveness (1 running, 0 stopped)")
SWEPT_TOKENS = Counter("taskauth_refresh_tokens_swept_total", "Refresh token rows removed by sweeps")
