"""
Chat session model: one continuous tutoring conversation for a (user, lesson) pair.
"""

from api.config import Base
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, Enum as SQLEnum, text
from enum import Enum

from api.utils.common import utcnow


class SessionStatus(str, Enum):
    """Session status."""
    ACTIVE = "active"
    CLOSED = "closed"


class ChatSession(Base):
    """
    Chat session scoped to (user, lesson).

    Contains:
    - status and timestamps (created_at, last_activity_at)
    - a metadata snapshot taken at creation (user level, lesson title); not kept in sync
    - message_count, bumped on every persisted message

    Sessions are closed, never deleted. The partial unique index allows at most one
    active session per (user, lesson).
    """
    __tablename__ = "chat_sessions"

    id = Column(String, primary_key=True, index=True)  # uuid
    user_id = Column(String, ForeignKey("users.id"), index=True, nullable=False)
    lesson_id = Column(String, ForeignKey("lessons.id"), index=True, nullable=False)
    status = Column(
        SQLEnum(SessionStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=SessionStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_activity_at = Column(DateTime, default=utcnow, nullable=False)
    closed_at = Column(DateTime, nullable=True)

    # opening conditions
    user_level = Column(String, nullable=False, default="beginner")
    lesson_title = Column(String, nullable=False, default="Unknown Lesson")
    message_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index(
            "uq_chat_sessions_active_pair",
            "user_id",
            "lesson_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
