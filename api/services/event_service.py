"""
Activity events from the client: learning-session start/end and lesson/quiz completion.
"""

import asyncio
from typing import Any, Dict, Optional

from api.errors import NotFoundError, ValidationError
from api.repositories.base import ActivityRepository, UserRepository
from api.services.analytics_service import AnalyticsService
from api.utils.common import iso_format, utcnow
from api.utils.logger import configure_logging

logger = configure_logging()

EVENT_TYPES = ("session_started", "lesson_completed", "quiz_completed", "session_ended")


class EventService:
    def __init__(self, users: UserRepository, activity: ActivityRepository, analytics: AnalyticsService):
        self.users = users
        self.activity = activity
        self.analytics = analytics

    async def process_event(
        self,
        user_id: str,
        event_type: str,
        *,
        content_id: Optional[str] = None,
        course_id: Optional[str] = None,
        time_spent: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        user = await asyncio.to_thread(self.users.get_by_id, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        if event_type == "session_started":
            return await self._session_started(user_id, course_id)
        if event_type == "session_ended":
            return await self._session_ended(user_id)
        if event_type in ("lesson_completed", "quiz_completed"):
            if not content_id:
                raise ValidationError(f"contentId is required for {event_type} event")
            kind = "lesson" if event_type == "lesson_completed" else "quiz"
            return await self._content_completed(user_id, kind, content_id, course_id, time_spent or 0, metadata)
        raise ValidationError(f"Unsupported event type: {event_type}")

    async def _session_started(self, user_id: str, course_id: Optional[str]) -> Dict[str, Any]:
        open_session = await asyncio.to_thread(self.activity.get_open_learning_session, user_id)
        if open_session is not None:
            await asyncio.to_thread(self.activity.end_learning_session, open_session.id)
        created = await asyncio.to_thread(self.activity.create_learning_session, user_id, course_id)
        logger.info("event=learning_session_started user_id=%s session_id=%s", user_id, created.id)
        return {"success": True, "message": "Learning session started", "sessionId": created.id}

    async def _session_ended(self, user_id: str) -> Dict[str, Any]:
        open_session = await asyncio.to_thread(self.activity.get_open_learning_session, user_id)
        if open_session is None:
            return {"success": True, "message": "No active session to end"}
        ended = await asyncio.to_thread(self.activity.end_learning_session, open_session.id)
        return {
            "success": True,
            "message": "Learning session ended",
            "sessionId": ended.id,
            "durationMinutes": ended.duration_minutes,
        }

    async def _content_completed(
        self,
        user_id: str,
        kind: str,
        content_id: str,
        course_id: Optional[str],
        time_spent: int,
        metadata: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        learning_session = await asyncio.to_thread(self.activity.get_open_learning_session, user_id)
        if learning_session is None:
            learning_session = await asyncio.to_thread(self.activity.create_learning_session, user_id, course_id)

        await asyncio.to_thread(
            self.activity.add_activity,
            learning_session.id,
            {"type": kind, "contentId": content_id, "timeSpent": time_spent, "at": iso_format(utcnow())},
        )

        details = dict(metadata or {})
        if kind == "quiz" and not details.get("percentage"):
            attempt = await asyncio.to_thread(self.activity.latest_quiz_attempt, user_id, content_id)
            if attempt is not None:
                details.update(
                    percentage=attempt.percentage,
                    score=attempt.score,
                    correctCount=attempt.correct_count,
                    totalQuestions=attempt.total_questions,
                )

        update = await self.analytics.update_user_analytics(user_id, kind, time_spent, details)
        label = "Lesson" if kind == "lesson" else "Quiz"
        return {
            "success": True,
            "message": f"{label} completion recorded",
            "xpGained": update.xp_gained,
            "totalXp": update.total_xp,
            "level": update.new_level,
        }
