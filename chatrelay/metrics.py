"""
Prometheus metrics for the chat relay.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- WebSocket handshake outcome counter (result)
- Open connection gauge
- Chat event outcome counter (event, result)
- Dropped delivery counter

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: accepted, resumed, missing_credential, invalid_credential
ws_handshakes_total = Counter(
    "ws_handshakes_total",
    "WebSocket handshake outcomes",
    labelnames=["result"]
)

ws_connections_active = Gauge(
    "ws_connections_active",
    "Currently registered WebSocket connections"
)

# event: message, delete, replay
chat_events_total = Counter(
    "chat_events_total",
    "Chat event processing outcomes",
    labelnames=["event", "result"]
)

deliveries_dropped_total = Counter(
    "deliveries_dropped_total",
    "Outbound events dropped because a connection's outbox was full"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_handshake(result: str) -> None:
    """Record a WebSocket handshake outcome."""
    ws_handshakes_total.labels(result=result).inc()


def set_active_connections(count: int) -> None:
    ws_connections_active.set(count)


def record_chat_event(event: str, result: str) -> None:
    """
    Record how a chat event was handled.

    Args:
        event: "message", "delete" or "replay"
        result: Outcome, e.g. broadcast, empty, storage_error, deleted,
            not_found, unauthorized, replayed, skipped
    """
    chat_events_total.labels(event=event, result=result).inc()


def record_delivery_dropped() -> None:
    deliveries_dropped_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string for Prometheus exposition format
    """
    return CONTENT_TYPE_LATEST
