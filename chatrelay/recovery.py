import logging

from chatrelay.errors import StorageUnavailable
from chatrelay.metrics import record_chat_event
from chatrelay.schemas import message_event
from chatrelay.sessions import Connection
from chatrelay.storage import MessageLog

logger = logging.getLogger(__name__)


class RecoveryReplayer:
    """
    Replays history a client missed while it was away.

    The client keeps its own offset and declares it on every fresh handshake,
    so the server holds no per-client delivery state.
    """

    def __init__(self, log: MessageLog):
        self._log = log

    async def replay(self, connection: Connection) -> int:
        """
        Privately deliver every message newer than the client's offset.

        Resumed connections are skipped: their missed events were already
        redelivered by session resumption.

        Returns:
            Number of messages replayed
        """
        if connection.resumed:
            logger.debug(f"Skipping replay for resumed connection {connection.id}")
            record_chat_event("replay", "skipped")
            return 0

        try:
            records = self._log.find_after(connection.client_offset)
        except StorageUnavailable:
            logger.error(f"Replay for {connection.identity} failed: storage unavailable")
            record_chat_event("replay", "storage_error")
            return 0

        for record in records:
            connection.deliver_private(message_event(record))

        record_chat_event("replay", "replayed")
        logger.info(
            f"Replayed {len(records)} messages to {connection.identity} "
            f"after offset {connection.client_offset}"
        )
        return len(records)
