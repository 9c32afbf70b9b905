"""Prometheus metrics for the HTTP layer and booking activity.

Collectors live on a dedicated registry so repeated test imports never
clash with the process-wide default registry.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REGISTRY = CollectorRegistry(auto_describe=True)

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests handled, by route template and status code.",
    ["method", "path", "status"],
    registry=REGISTRY,
)
HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency, by route template.",
    ["method", "path"],
    registry=REGISTRY,
)
TIME_SLOTS_CREATED = Counter(
    "minidoodle_time_slots_created_total",
    "Time slots published on calendars.",
    registry=REGISTRY,
)
MEETINGS_CREATED = Counter(
    "minidoodle_meetings_created_total",
    "Meetings booked into free slots.",
    registry=REGISTRY,
)
MEETINGS_CANCELLED = Counter(
    "minidoodle_meetings_cancelled_total",
    "Meetings cancelled, releasing their slot.",
    registry=REGISTRY,
)
SLOT_CONFLICTS = Counter(
    "minidoodle_slot_conflicts_total",
    "Slot creations or moves rejected because of an overlap.",
    registry=REGISTRY,
)


def observe_request(method: str, path: str, status: int, duration_s: float) -> None:
    HTTP_REQUESTS.labels(method=method, path=path, status=str(status)).inc()
    HTTP_LATENCY.labels(method=method, path=path).observe(duration_s)


def render() -> tuple:
    """Return `(payload, content_type)` in the Prometheus text format."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
