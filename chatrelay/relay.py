"""
Wiring of the relay components and dispatch of inbound events.

State machine per connection: handshake -> registered -> messaging/deleting
-> deregistered (suspended). The WebSocket endpoint drives it through
open(), handle() and close().
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from chatrelay.broadcast import BroadcastRouter
from chatrelay.config import Settings, settings as default_settings
from chatrelay.deletion import DeletionAuthorizer
from chatrelay.metrics import record_chat_event, record_handshake
from chatrelay.recovery import RecoveryReplayer
from chatrelay.resumption import SessionResumption
from chatrelay.schemas import ClientEvent, session_event
from chatrelay.sessions import Connection, SessionRegistry
from chatrelay.storage import MessageLog

logger = logging.getLogger(__name__)


class ChatRelay:
    """Owns the log, the registry and the components that act on them."""

    def __init__(self, log: MessageLog, resumption: SessionResumption):
        self.log = log
        self.resumption = resumption
        self.registry = SessionRegistry(resumption)
        self.router = BroadcastRouter(log, self.registry)
        self.replayer = RecoveryReplayer(log)
        self.authorizer = DeletionAuthorizer(log, self.registry)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ChatRelay":
        config = config or default_settings
        resumption = SessionResumption(
            window_seconds=config.RECOVERY_WINDOW_SECONDS,
            buffer_size=config.RECOVERY_BUFFER_SIZE,
        )
        return cls(MessageLog(), resumption)

    async def open(self, identity: str, client_offset: int = 0, sid: Optional[str] = None) -> Connection:
        """
        Register an authenticated connection and bring it up to date.

        Resumption, registration and replay run without a suspension point
        between them, so the connection neither misses nor duplicates a
        broadcast made around its arrival.
        """
        missed: Optional[List[dict]] = None
        if sid:
            missed = self.resumption.resume(sid, identity)

        if missed is not None:
            connection = Connection(identity=identity, resumed=True, id=sid)
        else:
            connection = Connection(identity=identity, client_offset=client_offset)

        connection.deliver_private(session_event(connection.id, connection.resumed))
        for event in missed or ():
            connection.deliver_private(event)

        self.registry.add(connection)
        record_handshake("resumed" if connection.resumed else "accepted")
        logger.info(
            f"{identity} connected",
            extra={"connection_id": connection.id, "resumed": connection.resumed},
        )

        await self.replayer.replay(connection)
        return connection

    async def handle(self, connection: Connection, raw: Optional[str]) -> None:
        """
        Dispatch one inbound frame.

        `raw` is None for binary frames. Those, malformed frames and unknown
        events are logged and ignored.
        """
        if raw is None:
            logger.warning(f"Ignoring binary frame from {connection.identity}")
            record_chat_event("frame", "malformed")
            return

        try:
            frame = ClientEvent.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed frame from {connection.identity}: {e.error_count()} errors")
            record_chat_event("frame", "malformed")
            return

        if frame.event == "message":
            await self.router.on_incoming_message(connection, frame.data)
        elif frame.event == "delete":
            await self.authorizer.on_delete_request(connection, frame.data)
        else:
            logger.warning(f"Ignoring unknown event '{frame.event}' from {connection.identity}")
            record_chat_event("unknown", "ignored")

    def close(self, connection: Connection) -> None:
        """Deregister a connection and suspend its session for possible resumption."""
        if not self.registry.remove(connection):
            return
        # Undelivered traffic is kept for resumption; the old handshake ack is not
        pending = [event for event in connection.pending() if event.get("event") != "session"]
        self.resumption.suspend(connection, pending)
        logger.info(f"{connection.identity} disconnected", extra={"connection_id": connection.id})
