"""
Prometheus metrics
"""

from prometheus_client import Counter, Histogram, REGISTRY


def _counter(name: str, documentation: str, labels):
    # Re-importing the module (reloads, test collection) must not re-register
    try:
        return Counter(name, documentation, labels)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


def _histogram(name: str, documentation: str, labels):
    try:
        return Histogram(name, documentation, labels)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


REQUEST_COUNT = _counter(
    "app_requests_total",
    "Total requests",
    ["method", "endpoint", "status"]
)
REQUEST_DURATION = _histogram(
    "app_request_duration_seconds",
    "Request duration",
    ["method", "endpoint"]
)

NOTIFICATIONS_TOTAL = _counter(
    "payment_notifications_total",
    "Gateway notifications by outcome",
    ["outcome"]
)
NOTIFICATION_DURATION = _histogram(
    "payment_notification_duration_seconds",
    "Time spent handling a gateway notification",
    ["outcome"]
)
GATEWAY_CALLS_TOTAL = _counter(
    "payment_gateway_calls_total",
    "Outbound gateway calls",
    ["operation", "result"]
)
TICKET_VERIFICATIONS_TOTAL = _counter(
    "ticket_verifications_total",
    "On-site ticket checks by result",
    ["result"]
)
