"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic event and response schemas, see schemas.py.
"""

from sqlalchemy import Column, Integer, String, Text

from chatrelay.storage import Base


class Message(Base):
    """
    SQLAlchemy model for the chat message log.

    Table: messages
    Primary Key: id, assigned by the database on insert. AUTOINCREMENT keeps
    ids strictly increasing and never reused, even after deletes.
    """
    __tablename__ = "messages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False)
    author = Column(String, nullable=False, index=True)
    created_at = Column(String, nullable=False)  # Server time ISO-8601
