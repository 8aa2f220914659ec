import logging
from typing import Any

from chatrelay.errors import StorageUnavailable
from chatrelay.metrics import record_chat_event
from chatrelay.schemas import deleted_event
from chatrelay.sessions import Connection, SessionRegistry
from chatrelay.storage import MessageLog
from chatrelay.utils import parse_message_id

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("chatrelay.audit")


class DeletionAuthorizer:
    """
    Lets a message's author, and nobody else, delete it.

    Requesters never get a response: a refused delete looks exactly like a
    delete of a message that does not exist.
    """

    def __init__(self, log: MessageLog, registry: SessionRegistry):
        self._log = log
        self._registry = registry

    async def on_delete_request(self, connection: Connection, message_id: Any) -> bool:
        """
        Delete `message_id` if `connection` authored it, then broadcast the invalidation.

        Returns:
            True only if the message was removed and 'deleted' was broadcast
        """
        target = parse_message_id(message_id)
        if target is None:
            logger.info(f"Delete from {connection.identity} ignored: unusable id {message_id!r}")
            record_chat_event("delete", "not_found")
            return False

        try:
            message = self._log.find_by_id(target)
            if message is None:
                logger.info(f"Delete of message {target} by {connection.identity}: already gone")
                record_chat_event("delete", "not_found")
                return False

            if message.author != connection.identity:
                audit_logger.warning(
                    "Unauthorized delete attempt",
                    extra={
                        "requester": connection.identity,
                        "message_id": target,
                        "connection_id": connection.id,
                    },
                )
                record_chat_event("delete", "unauthorized")
                return False

            removed = self._log.delete_by_id(target)
        except StorageUnavailable:
            logger.error(f"Delete of message {target} by {connection.identity} failed: storage unavailable")
            record_chat_event("delete", "storage_error")
            return False

        if not removed:
            # Lost a race with another delete of the same message
            record_chat_event("delete", "not_found")
            return False

        delivered = self._registry.broadcast(deleted_event(target))
        record_chat_event("delete", "deleted")
        logger.info(f"Message {target} deleted by {connection.identity}, invalidation sent to {delivered} connections")
        return True
