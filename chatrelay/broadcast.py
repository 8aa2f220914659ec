import logging
from typing import Any, Optional

from chatrelay.errors import StorageUnavailable
from chatrelay.metrics import record_chat_event
from chatrelay.schemas import MessageRecord, message_event
from chatrelay.sessions import Connection, SessionRegistry
from chatrelay.storage import MessageLog

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """Persists inbound chat messages and fans them out to every connection."""

    def __init__(self, log: MessageLog, registry: SessionRegistry):
        self._log = log
        self._registry = registry

    async def on_incoming_message(self, connection: Connection, content: Any) -> Optional[MessageRecord]:
        """
        Append a message from `connection` and broadcast it, sender included.

        Empty content and storage failures are dropped and logged; nothing is
        reported back to the sender. The append and the fan-out run without a
        suspension point between them, so broadcast order is log order.

        Returns:
            The stored record, or None if the message was dropped
        """
        if not isinstance(content, str) or not content:
            logger.info(f"Dropping empty message from {connection.identity}")
            record_chat_event("message", "empty")
            return None

        try:
            record = self._log.append(content, connection.identity)
        except StorageUnavailable:
            logger.error(f"Message from {connection.identity} dropped: storage unavailable")
            record_chat_event("message", "storage_error")
            return None

        delivered = self._registry.broadcast(message_event(record))
        record_chat_event("message", "broadcast")
        logger.info(f"Message {record.id} from {record.author} delivered to {delivered} connections")
        return record
