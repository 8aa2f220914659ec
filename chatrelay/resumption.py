"""
Connection-state recovery at the transport level.

When a connection closes its session is suspended for a short window. Events
broadcast while it is suspended are buffered. A client that reconnects with
the same sid and the same identity before the window ends gets those events
redelivered and is flagged as resumed, so history replay is skipped for it.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SuspendedSession:
    sid: str
    identity: str
    expires_at: float
    missed: Deque[dict] = field(default_factory=deque)
    overflowed: bool = False


class SessionResumption:
    """Tracks suspended sessions and the events they miss."""

    def __init__(
        self,
        window_seconds: float,
        buffer_size: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.buffer_size = buffer_size
        self._clock = clock
        self._sessions: Dict[str, SuspendedSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def suspend(self, connection, pending: Iterable[dict] = ()) -> None:
        """
        Keep a closed connection's session around for resumption.

        Args:
            connection: The connection that just closed
            pending: Events queued for it that never reached the transport
        """
        self._prune()
        if self.window_seconds <= 0:
            return

        session = SuspendedSession(
            sid=connection.id,
            identity=connection.identity,
            expires_at=self._clock() + self.window_seconds,
        )
        for event in pending:
            self._buffer(session, event)
        self._sessions[session.sid] = session
        logger.debug(f"Suspended session {session.sid} with {len(session.missed)} pending events")

    def record(self, event: dict) -> None:
        """Buffer a broadcast event for every suspended session."""
        self._prune()
        for session in self._sessions.values():
            self._buffer(session, event)

    def resume(self, sid: str, identity: str) -> Optional[List[dict]]:
        """
        Restore a suspended session.

        Returns:
            The events it missed, in broadcast order, or None if the session
            cannot be resumed (unknown, expired, overflowed or another identity)
        """
        self._prune()
        session = self._sessions.get(sid)
        if session is None:
            logger.info(f"No suspended session {sid}, starting fresh")
            return None

        if session.identity != identity:
            logger.warning(
                f"Resume of session {sid} refused: bound to {session.identity}, requested by {identity}"
            )
            return None

        del self._sessions[sid]
        if session.overflowed:
            logger.info(f"Session {sid} missed more than {self.buffer_size} events, starting fresh")
            return None

        logger.info(f"Resumed session {sid} for {identity} with {len(session.missed)} missed events")
        return list(session.missed)

    def _buffer(self, session: SuspendedSession, event: dict) -> None:
        if session.overflowed:
            return
        if len(session.missed) >= self.buffer_size:
            session.overflowed = True
            session.missed.clear()
            return
        session.missed.append(event)

    def _prune(self) -> None:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if s.expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired suspended sessions")
