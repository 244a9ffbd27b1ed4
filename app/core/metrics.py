from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

BOOKING_EVENTS = Counter(
    "booking_lifecycle_events_total",
    "Booking lifecycle events emitted",
    ["event"],
)

BOOKING_CONFLICTS = Counter(
    "booking_conflicts_total",
    "Booking attempts rejected because the slot is already taken",
)

PUSH_FAILURES = Counter(
    "push_events_failed_total",
    "Push events that could not be published",
    ["event"],
)

PUSH_SUBSCRIBERS = Gauge(
    "push_subscribers",
    "Currently connected push subscribers",
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
