"""
Session service: resolves the single active chat session for a (user, lesson) pair.
"""

import asyncio
import weakref
from typing import Tuple

from api.errors import ConflictError, NotFoundError
from api.models import ChatSession
from api.repositories.base import ChatSessionRepository, SessionSnapshot
from api.utils.logger import configure_logging

logger = configure_logging()


class SessionService:
    """
    Get-or-create for chat sessions.

    Creation is serialized per (user_id, lesson_id) with an asyncio.Lock, and the database
    enforces one active session per pair with a partial unique index. If another process
    wins the insert anyway, the ConflictError is resolved by reading the winner back.
    """

    def __init__(self, sessions: ChatSessionRepository):
        self.sessions = sessions
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str, lesson_id: str) -> asyncio.Lock:
        key = (user_id, lesson_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_or_create_active_session(self, user, lesson) -> ChatSession:
        """
        Return the active session for (user, lesson), touching last_activity_at, or create
        one with a snapshot of the user's level and the lesson title.
        """
        lock = self._lock_for(user.id, lesson.id)
        async with lock:
            existing = await asyncio.to_thread(self.sessions.get_active, user.id, lesson.id)
            if existing is not None:
                return await asyncio.to_thread(self.sessions.touch, existing.id)

            snapshot = SessionSnapshot(
                user_level=user.level or "beginner",
                lesson_title=lesson.title or "Unknown Lesson",
            )
            try:
                session = await asyncio.to_thread(self.sessions.create, user.id, lesson.id, snapshot)
            except ConflictError:
                logger.warning(
                    "event=chat_session_create_conflict user_id=%s lesson_id=%s", user.id, lesson.id
                )
                winner = await asyncio.to_thread(self.sessions.get_active, user.id, lesson.id)
                if winner is None:
                    raise
                return await asyncio.to_thread(self.sessions.touch, winner.id)

            logger.info(
                "event=chat_session_created session_id=%s user_id=%s lesson_id=%s",
                session.id,
                user.id,
                lesson.id,
            )
            return session

    async def close_active_session(self, user_id: str, lesson_id: str) -> ChatSession:
        async with self._lock_for(user_id, lesson_id):
            session = await asyncio.to_thread(self.sessions.get_active, user_id, lesson_id)
            if session is None:
                raise NotFoundError("Active chat session", f"{user_id}/{lesson_id}")
            await asyncio.to_thread(self.sessions.close, session.id)
            logger.info("event=chat_session_closed session_id=%s", session.id)
            return session
