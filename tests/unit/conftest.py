"""
Unit test fixtures. Repositories run against the temporary SQLite database from the root
conftest; the vector store, generator and dispatcher are fakes.
"""
import pytest

from api.repositories.sql import (
    SqlActivityRepository,
    SqlChatMessageRepository,
    SqlChatSessionRepository,
    SqlCourseRepository,
    SqlLessonRepository,
    SqlRecommendationRepository,
    SqlUserRepository,
)


@pytest.fixture
def user_repo(session_factory):
    return SqlUserRepository(session_factory)


@pytest.fixture
def lesson_repo(session_factory):
    return SqlLessonRepository(session_factory)


@pytest.fixture
def course_repo(session_factory):
    return SqlCourseRepository(session_factory)


@pytest.fixture
def session_repo(session_factory):
    return SqlChatSessionRepository(session_factory)


@pytest.fixture
def message_repo(session_factory):
    return SqlChatMessageRepository(session_factory)


@pytest.fixture
def recommendation_repo(session_factory):
    return SqlRecommendationRepository(session_factory)


@pytest.fixture
def activity_repo(session_factory):
    return SqlActivityRepository(session_factory)
