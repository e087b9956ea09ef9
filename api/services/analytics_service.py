"""
Learning analytics: XP, level, study time and streak, recomputed on each completed activity.
"""

import asyncio
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Literal, Optional

from api.errors import NotFoundError
from api.repositories.base import UserRepository
from api.services.email_service import EmailSender
from api.utils.common import utcnow
from api.utils.logger import configure_logging

logger = configure_logging()

ActivityType = Literal["lesson", "quiz", "reading"]

SESSION_LENGTH_MINUTES = 30


def xp_for_activity(activity_type: str, metadata: Optional[Dict[str, Any]] = None) -> int:
    if activity_type == "lesson":
        return 50
    if activity_type == "reading":
        return 25
    if activity_type == "quiz":
        percentage = (metadata or {}).get("percentage") or 0
        return int(math.floor(float(percentage)))
    return 0


def level_for_xp(total_xp: int) -> int:
    if total_xp < 100:
        return 1
    return int(math.floor(math.sqrt(total_xp / 100))) + 1


def next_streak(
    streak: int, start: Optional[date], last_activity: Optional[date], today: date
) -> tuple[int, date]:
    """Same day keeps the streak, the next day extends it, anything else restarts at 1."""
    if last_activity is not None and streak > 0:
        gap = (today - last_activity).days
        if gap == 0:
            return streak, start or today
        if gap == 1:
            return streak + 1, start or last_activity
    return 1, today


def is_milestone(old_level: int, new_level: int) -> bool:
    if new_level <= old_level:
        return False
    return new_level == 2 or any(level % 5 == 0 for level in range(old_level + 1, new_level + 1))


@dataclass(frozen=True)
class AnalyticsUpdate:
    xp_gained: int
    total_xp: int
    old_level: int
    new_level: int
    study_streak: int


class AnalyticsService:
    def __init__(self, users: UserRepository, emails: Optional[EmailSender] = None):
        self.users = users
        self.emails = emails

    async def update_user_analytics(
        self,
        user_id: str,
        activity_type: ActivityType,
        time_spent: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        today: Optional[date] = None,
    ) -> AnalyticsUpdate:
        user = await asyncio.to_thread(self.users.get_by_id, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        today = today or utcnow().date()
        xp_gained = xp_for_activity(activity_type, metadata)
        total_xp = (user.total_xp or 0) + xp_gained
        old_level = user.current_level or 1
        new_level = level_for_xp(total_xp)
        total_minutes = (user.total_study_minutes or 0) + max(0, int(time_spent or 0))
        sessions = max(1, total_minutes // SESSION_LENGTH_MINUTES)
        streak, streak_start = next_streak(
            user.study_streak or 0, user.streak_start_date, user.last_activity_date, today
        )

        await asyncio.to_thread(
            self.users.update_analytics,
            user_id,
            total_xp=total_xp,
            current_level=new_level,
            total_study_minutes=total_minutes,
            average_session_minutes=total_minutes // sessions,
            study_streak=streak,
            streak_start_date=streak_start,
            last_activity_date=today,
        )
        logger.info(
            "event=analytics_updated user_id=%s activity=%s xp_gained=%s total_xp=%s level=%s streak=%s",
            user_id,
            activity_type,
            xp_gained,
            total_xp,
            new_level,
            streak,
        )

        if self.emails is not None and is_milestone(old_level, new_level):
            try:
                await self.emails.send_level_up(user, old_level, new_level)
            except Exception as e:
                logger.warning("event=level_up_email_failed user_id=%s error=%s", user_id, e)

        return AnalyticsUpdate(
            xp_gained=xp_gained,
            total_xp=total_xp,
            old_level=old_level,
            new_level=new_level,
            study_streak=streak,
        )
