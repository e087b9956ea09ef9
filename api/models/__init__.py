"""
API data models. Single import surface for DB entities and session types.

DB entities (api.models.models):
- User, Course, Lesson, ChatMessage, Recommendation, LearningSession, QuizAttempt

Chat session (api.models.session):
- ChatSession, SessionStatus
"""

from api.models.models import (
    User,
    Course,
    Lesson,
    ChatMessage,
    Recommendation,
    RecommendationStatus,
    LearningSession,
    QuizAttempt,
)
from api.models.session import ChatSession, SessionStatus

__all__ = [
    "User",
    "Course",
    "Lesson",
    "ChatMessage",
    "Recommendation",
    "RecommendationStatus",
    "LearningSession",
    "QuizAttempt",
    "ChatSession",
    "SessionStatus",
]
