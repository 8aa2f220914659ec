"""
Live connections and the registry used for fan-out.

A Connection is created only after its credential has been validated and is
never mutated afterwards. Live broadcasts go through a bounded per-connection
queue drained by a single sender task, so delivery to one peer never waits on
another and every peer sees events in the order they were enqueued. Private
catch-up traffic (handshake ack, resumed events, history replay) goes to an
unbounded backlog that the sender empties before any live event.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Iterator, List, Optional

from chatrelay.config import settings
from chatrelay.metrics import record_delivery_dropped, set_active_connections

logger = logging.getLogger(__name__)


def _new_outbox() -> asyncio.Queue:
    return asyncio.Queue(maxsize=settings.OUTBOX_SIZE)


@dataclass(frozen=True, eq=False)
class Connection:
    """An authenticated transport session."""
    identity: str
    resumed: bool = False
    client_offset: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    outbox: asyncio.Queue = field(default_factory=_new_outbox, repr=False)
    backlog: Deque[dict] = field(default_factory=deque, repr=False)

    def deliver(self, event: dict) -> bool:
        """
        Queue a live event for this connection without waiting.

        Returns:
            False if the outbox is full and the event was dropped
        """
        try:
            self.outbox.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Outbox full, dropping event",
                extra={"connection_id": self.id, "event": event.get("event")},
            )
            record_delivery_dropped()
            return False
        return True

    def deliver_private(self, event: dict) -> None:
        """Queue catch-up traffic meant for this connection only. Never dropped."""
        self.backlog.append(event)

    def pending(self) -> List[dict]:
        """Remove and return every event not yet handed to the transport, backlog first."""
        events = list(self.backlog)
        self.backlog.clear()
        while not self.outbox.empty():
            events.append(self.outbox.get_nowait())
        return events

    async def pump(self, send: Callable[[dict], Awaitable[None]]) -> None:
        """Forward queued events to the transport until sending fails or the task is cancelled."""
        while True:
            if self.backlog:
                event = self.backlog.popleft()
            else:
                event = await self.outbox.get()
            try:
                await send(event)
            except Exception as e:
                logger.warning(f"Delivery to connection {self.id} failed: {e}")
                return


class SessionRegistry:
    """
    The set of currently open connections.

    Mutated only on connection open/close. Iteration works on a snapshot so a
    broadcast is never disturbed by peers joining or leaving.
    """

    def __init__(self, resumption=None):
        self._connections: Dict[str, Connection] = {}
        self._resumption = resumption

    def add(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        set_active_connections(len(self._connections))
        logger.info(f"Registered {connection.identity}, open connections: {len(self._connections)}")

    def remove(self, connection: Connection) -> bool:
        # Only drop the entry if it is still this connection
        if self._connections.get(connection.id) is not connection:
            return False
        del self._connections[connection.id]
        set_active_connections(len(self._connections))
        logger.info(f"Deregistered {connection.identity}, open connections: {len(self._connections)}")
        return True

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def broadcast(self, event: dict) -> int:
        """
        Deliver an event to every open connection.

        Suspended sessions also get a copy so they can catch up on resume.

        Returns:
            Number of connections that accepted the event
        """
        delivered = sum(1 for connection in self if connection.deliver(event))
        if self._resumption is not None:
            self._resumption.record(event)
        logger.debug(f"Broadcast '{event.get('event')}' to {delivered} of {len(self)} connections")
        return delivered
