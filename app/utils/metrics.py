from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


HTTP_REQUESTS_TOTAL = Counter(
    "crowdfund_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "crowdfund_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "path"],
)


CHECKOUT_EVENTS_TOTAL = Counter(
    "crowdfund_checkout_events_total",
    "Checkout (charge creation) events",
    ["event", "result"],
)

NOTIFY_EVENTS_TOTAL = Counter(
    "crowdfund_notify_events_total",
    "Gateway notification events",
    ["event", "result"],
)

RECONCILE_EVENTS_TOTAL = Counter(
    "crowdfund_reconcile_events_total",
    "Transaction reconciliation outcomes",
    ["result"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
