"""
Utility functions for the chat relay.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Largest id SQLite can store in an INTEGER column
MAX_MESSAGE_ID = 2 ** 63 - 1


def utc_now_iso() -> str:
    """Current server time as ISO-8601 UTC with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def parse_message_id(value: Any) -> Optional[int]:
    """
    Parse a wire message id into the integer key used by the log.

    Args:
        value: Id as sent by a client (decimal string or int)

    Returns:
        Positive integer id, or None if the value cannot name a message
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            logger.debug(f"Unparsable message id: {value!r}")
            return None
        value = int(value)
    if isinstance(value, int) and 0 < value <= MAX_MESSAGE_ID:
        return value
    logger.debug(f"Message id out of range or wrong type: {value!r}")
    return None


def parse_offset(value: Any) -> int:
    """
    Parse the client-declared offset from the handshake.

    Absent, empty or malformed offsets mean "nothing seen yet" (0).
    """
    if value is None or value == "":
        return 0
    parsed = parse_message_id(value)
    if parsed is None:
        logger.debug(f"Ignoring malformed client offset: {value!r}")
        return 0
    return parsed
