from api.config import Base
from sqlalchemy import Column, Integer, String, JSON, DateTime, Date, ForeignKey, Text, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from enum import Enum
from uuid import uuid4

from api.utils.common import utcnow


def _uuid() -> str:
    return str(uuid4())


class User(Base):
    """Local mirror of an identity-provider user, plus learning profile and analytics."""

    __tablename__ = "users"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    external_id = Column(String, unique=True, index=True, nullable=True)  # null once anonymized
    email = Column(String, nullable=False, default="")
    firstname = Column(String, nullable=False, default="")
    lastname = Column(String, nullable=False, default="")
    username = Column(String, nullable=False, default="")
    onboarding_status = Column(String, nullable=False, default="not_started")  # not_started|completed

    # learning profile
    level = Column(String, nullable=False, default="beginner")  # beginner|intermediate|advanced
    delivery_preference = Column(String, nullable=True)  # explanation style
    language_preference = Column(String, nullable=True)  # id|en|mix
    learning_goals = Column(JSON, nullable=True)  # list[str]

    # analytics snapshot
    total_xp = Column(Integer, nullable=False, default=0)
    current_level = Column(Integer, nullable=False, default=1)
    total_study_minutes = Column(Integer, nullable=False, default=0)
    average_session_minutes = Column(Integer, nullable=False, default=0)
    study_streak = Column(Integer, nullable=False, default=0)
    streak_start_date = Column(Date, nullable=True)
    last_activity_date = Column(Date, nullable=True)

    email_preferences = Column(JSON, nullable=True)  # {"welcome_email": bool, "achievement_email": bool}
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Course(Base):
    __tablename__ = "courses"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    difficulty = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    lessons = relationship("Lesson", backref="course")


class Lesson(Base):
    __tablename__ = "lessons"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    course_id = Column(String, ForeignKey("courses.id"), index=True, nullable=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ChatMessage(Base):
    """
    One persisted chat message. `parts` holds the codec's document representation
    (list of tagged part dicts); `custom_metadata` is the opaque JSON string.
    """

    __tablename__ = "chat_messages"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    message_id = Column(String, index=True, nullable=False)  # client-side message id
    session_id = Column(String, ForeignKey("chat_sessions.id"), index=True, nullable=False)
    seq = Column(Integer, nullable=False)
    role = Column(String, nullable=False)  # user|assistant|system
    parts = Column(JSON, nullable=False)
    custom_metadata = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("session_id", "seq", name="uq_chat_messages_session_seq"),)


class RecommendationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Recommendation(Base):
    """One record per user; re-requesting overwrites it in place."""

    __tablename__ = "recommendations"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), unique=True, index=True, nullable=False)
    query = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=RecommendationStatus.IN_PROGRESS.value)
    message = Column(Text, nullable=True)
    course_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class LearningSession(Base):
    """A study session opened/closed by activity events (not a chat session)."""

    __tablename__ = "learning_sessions"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), index=True, nullable=False)
    course_id = Column(String, nullable=True)
    start_time = Column(DateTime, default=utcnow, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    activities = Column(JSON, nullable=False, default=list)  # [{type, content_id, time_spent, at}]


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    id = Column(String, primary_key=True, index=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), index=True, nullable=False)
    quiz_id = Column(String, index=True, nullable=False)
    score = Column(Float, nullable=True)
    percentage = Column(Float, nullable=True)
    correct_count = Column(Integer, nullable=True)
    total_questions = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
