import logging
from typing import Callable, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from chatrelay.config import settings
from chatrelay.errors import StorageUnavailable
from chatrelay.schemas import MessageRecord
from chatrelay.utils import utc_now_iso

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's async
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from chatrelay.models import Message  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            result = db.execute(text(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='messages'"
            )).scalar()
            if result == 0:
                logger.error("Database schema not applied: 'messages' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Durable Message Log
# =============================================================================

class MessageLog:
    """
    Append-only chat message log.

    The database assigns ids, so concurrent appends can never observe or hand
    out the same id, and id order is insertion order. Every SQLAlchemy failure
    surfaces as StorageUnavailable. Records are returned as detached
    MessageRecord values; callers never touch ORM rows.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def append(self, content: str, author: str) -> MessageRecord:
        """
        Persist a new message and return it with its assigned id.

        Args:
            content: Non-empty message text
            author: Identity bound to the sending connection

        Raises:
            StorageUnavailable: if the record could not be written
        """
        from chatrelay.models import Message

        created_at = utc_now_iso()
        logger.debug(f"Appending message: author={author}, created_at={created_at}")

        try:
            with self._session_factory() as db:
                message = Message(content=content, author=author, created_at=created_at)
                db.add(message)
                db.commit()
                db.refresh(message)
                record = MessageRecord.model_validate(message)
        except SQLAlchemyError as e:
            logger.error(f"Failed to append message from {author}: {e}")
            raise StorageUnavailable("message log is not writable") from e

        logger.info(f"Message appended: id={record.id}, author={record.author}")
        return record

    def find_after(self, offset: Optional[int] = None) -> List[MessageRecord]:
        """
        Return every message with id > offset in ascending id order.

        An absent or zero offset returns the whole log.
        """
        from chatrelay.models import Message

        offset = offset or 0
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(Message)
                    .filter(Message.id > offset)
                    .order_by(Message.id.asc())
                    .all()
                )
                records = [MessageRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to read messages after offset {offset}: {e}")
            raise StorageUnavailable("message log is not readable") from e

        logger.debug(f"Found {len(records)} messages after offset {offset}")
        return records

    def find_by_id(self, message_id: int) -> Optional[MessageRecord]:
        """Look up one message; None when it does not exist."""
        from chatrelay.models import Message

        try:
            with self._session_factory() as db:
                row = db.query(Message).filter(Message.id == message_id).first()
                record = MessageRecord.model_validate(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to look up message {message_id}: {e}")
            raise StorageUnavailable("message log is not readable") from e

        logger.debug(f"Message lookup {message_id}: {'found' if record else 'not found'}")
        return record

    def delete_by_id(self, message_id: int) -> bool:
        """
        Remove a message.

        Returns:
            True if this call removed the row, False if it was already gone.
            Of two racing deletes for the same id exactly one returns True.
        """
        from chatrelay.models import Message

        try:
            with self._session_factory() as db:
                deleted = (
                    db.query(Message)
                    .filter(Message.id == message_id)
                    .delete(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete message {message_id}: {e}")
            raise StorageUnavailable("message log is not writable") from e

        logger.info(f"Delete message {message_id}: {'removed' if deleted else 'not found'}")
        return deleted > 0
