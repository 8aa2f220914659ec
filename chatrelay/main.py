import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, WebSocket, WebSocketDisconnect, status

from chatrelay.auth import bind_identity, extract_credential
from chatrelay.config import settings
from chatrelay.errors import InvalidCredential, MissingCredential
from chatrelay.logging_utils import setup_logging, RequestLoggingMiddleware, connection_id_ctx
from chatrelay.metrics import record_handshake, get_metrics, get_metrics_content_type
from chatrelay.relay import ChatRelay
from chatrelay.schemas import HealthResponse
from chatrelay.storage import init_db, check_db_health
from chatrelay.utils import parse_offset


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and build the relay
    - Shutdown: Drop the relay; open sockets are closed by the server
    """
    init_db()
    app.state.relay = ChatRelay.from_settings()
    yield
    logger.info(f"Shutting down with {len(app.state.relay.registry)} open connections")


app = FastAPI(
    title="Chat Relay",
    description="Real-time chat relay with durable message log and offset-based recovery",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    Used by orchestrators to determine if the app needs to be restarted.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. SECRET_JWT_KEY is set (non-empty)

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.SECRET_JWT_KEY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="SECRET_JWT_KEY not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Chat WebSocket
# =============================================================================

@app.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    """
    Chat connection.

    Handshake:
        - Credential: access_token cookie, Authorization: Bearer header, or token query param
        - offset: id of the last message the client holds (fresh handshakes only)
        - sid: session id from a previous connection, to resume it

    Frames are JSON {"event": ..., "data": ...}. Clients send 'message' and
    'delete'; the server sends 'session', 'message' and 'deleted'.
    """
    try:
        identity = bind_identity(extract_credential(websocket))
    except MissingCredential:
        record_handshake("missing_credential")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    except InvalidCredential:
        record_handshake("invalid_credential")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    relay: ChatRelay = websocket.app.state.relay
    connection = await relay.open(
        identity,
        client_offset=parse_offset(websocket.query_params.get("offset")),
        sid=websocket.query_params.get("sid"),
    )
    ctx_token = connection_id_ctx.set(connection.id)
    sender = asyncio.create_task(connection.pump(websocket.send_json))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            await relay.handle(connection, message.get("text"))
    except WebSocketDisconnect as e:
        logger.debug(f"Connection {connection.id} closed with code {e.code}")
    finally:
        relay.close(connection)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        connection_id_ctx.reset(ctx_token)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    Returns metrics in Prometheus text exposition format including:
    - http_requests_total: Total HTTP requests by method, path, status
    - ws_handshakes_total: Handshake outcomes by result
    - ws_connections_active: Open WebSocket connections
    - chat_events_total: Chat event outcomes by event and result
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
