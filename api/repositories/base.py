"""
Persistence contracts the services depend on. SQLAlchemy implementations live in
`api.repositories.sql`; tests may substitute their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from api.models import ChatSession, Course, LearningSession, Lesson, QuizAttempt, Recommendation, User
from api.schemas.message_schemas import UIMessage


@dataclass(frozen=True)
class SessionSnapshot:
    """Opening conditions captured when a chat session is created."""

    user_level: str
    lesson_title: str


class UserRepository(ABC):
    @abstractmethod
    def get_by_external_id(self, external_id: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def create(self, **fields: Any) -> User:
        raise NotImplementedError

    @abstractmethod
    def update(self, user_id: str, **fields: Any) -> Optional[User]:
        """Set the given fields; None values are ignored."""
        raise NotImplementedError

    @abstractmethod
    def anonymize(self, user_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_analytics(
        self,
        user_id: str,
        *,
        total_xp: int,
        current_level: int,
        total_study_minutes: int,
        average_session_minutes: int,
        study_streak: int,
        streak_start_date: date,
        last_activity_date: date,
    ) -> None:
        raise NotImplementedError


class LessonRepository(ABC):
    @abstractmethod
    def get_by_id(self, lesson_id: str) -> Optional[Lesson]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Lesson]:
        raise NotImplementedError


class CourseRepository(ABC):
    @abstractmethod
    def get_by_ids(self, course_ids: list[str]) -> list[Course]:
        """Courses for the given ids in the order given; unknown ids are skipped."""
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[Course]:
        raise NotImplementedError


class ChatSessionRepository(ABC):
    @abstractmethod
    def get_active(self, user_id: str, lesson_id: str) -> Optional[ChatSession]:
        raise NotImplementedError

    @abstractmethod
    def create(self, user_id: str, lesson_id: str, snapshot: SessionSnapshot) -> ChatSession:
        """
        Insert a new active session. Raises ConflictError if an active session for the
        pair already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def touch(self, session_id: str) -> ChatSession:
        """Stamp last_activity_at = now and return the updated session."""
        raise NotImplementedError

    @abstractmethod
    def close(self, session_id: str) -> None:
        raise NotImplementedError


class ChatMessageRepository(ABC):
    @abstractmethod
    def save(self, session: ChatSession, message: UIMessage, metadata: Optional[dict[str, Any]] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def history(self, user_id: str, lesson_id: str) -> list[UIMessage]:
        """Messages of the active session for the pair, oldest first."""
        raise NotImplementedError


class RecommendationRepository(ABC):
    @abstractmethod
    def upsert(
        self,
        user_id: str,
        *,
        query: str,
        status: str,
        message: Optional[str] = None,
        reason: Optional[str] = None,
        course_ids: Optional[list[str]] = None,
    ) -> Recommendation:
        raise NotImplementedError

    @abstractmethod
    def get_for_user(self, user_id: str) -> Optional[Recommendation]:
        raise NotImplementedError


class ActivityRepository(ABC):
    """Learning sessions and quiz attempts used by activity tracking."""

    @abstractmethod
    def get_open_learning_session(self, user_id: str) -> Optional[LearningSession]:
        raise NotImplementedError

    @abstractmethod
    def create_learning_session(self, user_id: str, course_id: Optional[str] = None) -> LearningSession:
        raise NotImplementedError

    @abstractmethod
    def end_learning_session(self, learning_session_id: str) -> LearningSession:
        raise NotImplementedError

    @abstractmethod
    def add_activity(self, learning_session_id: str, activity: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def latest_quiz_attempt(self, user_id: str, quiz_id: str) -> Optional[QuizAttempt]:
        raise NotImplementedError
