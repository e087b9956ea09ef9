"""
SQLAlchemy implementations of the repository contracts.

Each call runs in its own short-lived DB session (from the injected session factory), so
repositories are safe to share across requests and background tasks. Every SQLAlchemy
failure is wrapped in RepositoryError with the operation that failed.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator, Optional
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DBSession, selectinload, sessionmaker

from api.errors import ConflictError, NotFoundError, RepositoryError
from api.models import (
    ChatMessage,
    ChatSession,
    Course,
    LearningSession,
    Lesson,
    QuizAttempt,
    Recommendation,
    SessionStatus,
    User,
)
from api.repositories.base import (
    ActivityRepository,
    ChatMessageRepository,
    ChatSessionRepository,
    CourseRepository,
    LessonRepository,
    RecommendationRepository,
    SessionSnapshot,
    UserRepository,
)
from api.schemas.message_schemas import UIMessage
from api.utils.common import utcnow
from api.utils.message_codec import decode_message, encode_message, is_lossy
from api.utils.logger import configure_logging

logger = configure_logging()

_MAX_WRITE_ATTEMPTS = 10


class _DuplicateKey(Exception):
    """A concurrent writer took the unique key this write wanted."""


class _SqlRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _db(self, operation: str) -> Iterator[DBSession]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise RepositoryError(f"Failed to {operation}", e) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class SqlUserRepository(_SqlRepository, UserRepository):
    def get_by_external_id(self, external_id: str) -> Optional[User]:
        with self._db(f"fetch user by external id {external_id}") as db:
            return db.query(User).filter(User.external_id == external_id).first()

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._db(f"fetch user {user_id}") as db:
            return db.get(User, user_id)

    def create(self, **fields: Any) -> User:
        with self._db(f"create user {fields.get('external_id')}") as db:
            user = User(**fields)
            db.add(user)
            db.flush()
            return user

    def update(self, user_id: str, **fields: Any) -> Optional[User]:
        changes = {k: v for k, v in fields.items() if v is not None}
        with self._db(f"update user {user_id}") as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            for key, value in changes.items():
                setattr(user, key, value)
            return user

    def anonymize(self, user_id: str) -> None:
        with self._db(f"anonymize user {user_id}") as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.email = "deleted@example.com"
            user.firstname = "Deleted"
            user.lastname = "User"
            user.username = f"deleted_user_{int(utcnow().timestamp() * 1000)}"
            user.external_id = None

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
        with self._db(f"update analytics for user {user_id}") as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.total_xp = total_xp
            user.current_level = current_level
            user.total_study_minutes = total_study_minutes
            user.average_session_minutes = average_session_minutes
            user.study_streak = study_streak
            user.streak_start_date = streak_start_date
            user.last_activity_date = last_activity_date


class SqlLessonRepository(_SqlRepository, LessonRepository):
    def get_by_id(self, lesson_id: str) -> Optional[Lesson]:
        with self._db(f"fetch lesson {lesson_id}") as db:
            return db.get(Lesson, lesson_id)

    def list_all(self) -> list[Lesson]:
        with self._db("list lessons") as db:
            return db.query(Lesson).order_by(Lesson.created_at.asc()).all()


class SqlCourseRepository(_SqlRepository, CourseRepository):
    def get_by_ids(self, course_ids: list[str]) -> list[Course]:
        if not course_ids:
            return []
        with self._db("fetch courses by ids") as db:
            found = {c.id: c for c in db.query(Course).filter(Course.id.in_(course_ids)).all()}
        return [found[cid] for cid in course_ids if cid in found]

    def list_all(self) -> list[Course]:
        with self._db("list courses") as db:
            return db.query(Course).options(selectinload(Course.lessons)).order_by(Course.created_at.asc()).all()


class SqlChatSessionRepository(_SqlRepository, ChatSessionRepository):
    def get_active(self, user_id: str, lesson_id: str) -> Optional[ChatSession]:
        with self._db(f"fetch active session for user {user_id} and lesson {lesson_id}") as db:
            return (
                db.query(ChatSession)
                .filter(
                    ChatSession.user_id == user_id,
                    ChatSession.lesson_id == lesson_id,
                    ChatSession.status == SessionStatus.ACTIVE,
                )
                .first()
            )

    def create(self, user_id: str, lesson_id: str, snapshot: SessionSnapshot) -> ChatSession:
        now = utcnow()
        with self._db(f"create session for user {user_id} and lesson {lesson_id}") as db:
            session = ChatSession(
                id=str(uuid4()),
                user_id=user_id,
                lesson_id=lesson_id,
                status=SessionStatus.ACTIVE,
                created_at=now,
                last_activity_at=now,
                user_level=snapshot.user_level,
                lesson_title=snapshot.lesson_title,
                message_count=0,
            )
            db.add(session)
            try:
                db.flush()
            except IntegrityError as e:
                raise ConflictError(
                    f"An active session already exists for user {user_id} and lesson {lesson_id}",
                    details={"user_id": user_id, "lesson_id": lesson_id},
                ) from e
            return session

    def touch(self, session_id: str) -> ChatSession:
        with self._db(f"update last activity for session {session_id}") as db:
            session = db.get(ChatSession, session_id)
            if session is None:
                raise NotFoundError("Chat session", session_id)
            session.last_activity_at = utcnow()
            return session

    def close(self, session_id: str) -> None:
        with self._db(f"close session {session_id}") as db:
            session = db.get(ChatSession, session_id)
            if session is None:
                raise NotFoundError("Chat session", session_id)
            session.status = SessionStatus.CLOSED
            session.closed_at = utcnow()


class SqlChatMessageRepository(_SqlRepository, ChatMessageRepository):
    def save(self, session: ChatSession, message: UIMessage, metadata: Optional[dict[str, Any]] = None) -> None:
        document = encode_message(message, session.id, metadata)
        if is_lossy(document):
            logger.warning("event=message_saved_lossy session_id=%s message_id=%s", session.id, message.id)
        # a concurrent save can take the same seq; the unique constraint rejects it and we re-read
        for attempt in range(1, _MAX_WRITE_ATTEMPTS + 1):
            try:
                self._insert(session.id, document)
                return
            except _DuplicateKey:
                logger.debug("event=message_seq_taken session_id=%s attempt=%d", session.id, attempt)
        raise RepositoryError(f"Failed to save message for session {session.id}: seq contention")

    def _insert(self, session_id: str, document: dict[str, Any]) -> None:
        with self._db(f"save message for session {session_id}") as db:
            last_seq = db.query(func.max(ChatMessage.seq)).filter(ChatMessage.session_id == session_id).scalar()
            db.add(
                ChatMessage(
                    id=str(uuid4()),
                    message_id=document["message_id"],
                    session_id=session_id,
                    seq=(last_seq or 0) + 1,
                    role=document["role"],
                    parts=document["parts"],
                    custom_metadata=(document["metadata"] or {}).get("custom"),
                    created_at=utcnow(),
                )
            )
            try:
                db.flush()
            except IntegrityError as e:
                raise _DuplicateKey() from e
            db.query(ChatSession).filter(ChatSession.id == session_id).update(
                {ChatSession.message_count: ChatSession.message_count + 1},
                synchronize_session=False,
            )

    def history(self, user_id: str, lesson_id: str) -> list[UIMessage]:
        with self._db(f"fetch chat history for user {user_id} and lesson {lesson_id}") as db:
            rows = (
                db.query(ChatMessage)
                .join(ChatSession, ChatSession.id == ChatMessage.session_id)
                .filter(
                    ChatSession.user_id == user_id,
                    ChatSession.lesson_id == lesson_id,
                    ChatSession.status == SessionStatus.ACTIVE,
                )
                .order_by(ChatMessage.seq.asc())
                .all()
            )
        return [
            decode_message(
                {
                    "message_id": row.message_id,
                    "role": row.role,
                    "metadata": {"custom": row.custom_metadata} if row.custom_metadata else None,
                    "parts": row.parts,
                }
            )
            for row in rows
        ]


class SqlRecommendationRepository(_SqlRepository, RecommendationRepository):
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
        now = utcnow()
        # two first-time upserts can both miss the row; the loser retries as an update
        for attempt in range(1, _MAX_WRITE_ATTEMPTS + 1):
            try:
                with self._db(f"save recommendation for user {user_id}") as db:
                    rec = db.query(Recommendation).filter(Recommendation.user_id == user_id).first()
                    if rec is None:
                        rec = Recommendation(id=str(uuid4()), user_id=user_id, created_at=now)
                        db.add(rec)
                    rec.query = query
                    rec.status = status
                    rec.message = message
                    rec.reason = reason
                    rec.course_ids = list(course_ids or [])
                    rec.updated_at = now
                    try:
                        db.flush()
                    except IntegrityError as e:
                        raise _DuplicateKey() from e
                    return rec
            except _DuplicateKey:
                logger.debug("event=recommendation_insert_raced user_id=%s attempt=%d", user_id, attempt)
        raise RepositoryError(f"Failed to save recommendation for user {user_id}: write contention")

    def get_for_user(self, user_id: str) -> Optional[Recommendation]:
        with self._db(f"fetch recommendation for user {user_id}") as db:
            return db.query(Recommendation).filter(Recommendation.user_id == user_id).first()


class SqlActivityRepository(_SqlRepository, ActivityRepository):
    def get_open_learning_session(self, user_id: str) -> Optional[LearningSession]:
        with self._db(f"fetch open learning session for user {user_id}") as db:
            return (
                db.query(LearningSession)
                .filter(LearningSession.user_id == user_id, LearningSession.end_time.is_(None))
                .order_by(LearningSession.start_time.desc())
                .first()
            )

    def create_learning_session(self, user_id: str, course_id: Optional[str] = None) -> LearningSession:
        with self._db(f"create learning session for user {user_id}") as db:
            ls = LearningSession(
                id=str(uuid4()), user_id=user_id, course_id=course_id, start_time=utcnow(), activities=[]
            )
            db.add(ls)
            db.flush()
            return ls

    def end_learning_session(self, learning_session_id: str) -> LearningSession:
        with self._db(f"end learning session {learning_session_id}") as db:
            ls = db.get(LearningSession, learning_session_id)
            if ls is None:
                raise NotFoundError("Learning session", learning_session_id)
            now = utcnow()
            ls.end_time = now
            ls.duration_minutes = int((now - ls.start_time).total_seconds() // 60)
            return ls

    def add_activity(self, learning_session_id: str, activity: dict[str, Any]) -> None:
        with self._db(f"add activity to learning session {learning_session_id}") as db:
            ls = db.get(LearningSession, learning_session_id)
            if ls is None:
                raise NotFoundError("Learning session", learning_session_id)
            # reassign so the JSON column is flagged dirty
            ls.activities = [*(ls.activities or []), activity]

    def latest_quiz_attempt(self, user_id: str, quiz_id: str) -> Optional[QuizAttempt]:
        with self._db(f"fetch latest quiz attempt for user {user_id}") as db:
            return (
                db.query(QuizAttempt)
                .filter(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
                .order_by(QuizAttempt.created_at.desc())
                .first()
            )
