"""
Composition root: every component is built here with its collaborators passed in.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from api.config import Settings
from api.jobs import build_job_handlers
from api.repositories.base import (
    ActivityRepository,
    ChatMessageRepository,
    ChatSessionRepository,
    CourseRepository,
    LessonRepository,
    RecommendationRepository,
    UserRepository,
)
from api.repositories.sql import (
    SqlActivityRepository,
    SqlChatMessageRepository,
    SqlChatSessionRepository,
    SqlCourseRepository,
    SqlLessonRepository,
    SqlRecommendationRepository,
    SqlUserRepository,
)
from api.services.analytics_service import AnalyticsService
from api.services.chat_service import ChatService
from api.services.context_retriever import ContextRetriever
from api.services.email_service import EmailSender, LoggingEmailSender
from api.services.event_service import EventService
from api.services.recommendation_service import RecommendationService
from api.services.session_service import SessionService
from api.services.user_sync_service import UserSyncService
from infra.jobs.dispatcher import InngestDispatcher, JobDispatcher, JobHandler, LocalDispatcher
from infra.llm.base import TextGenerator
from infra.vector.store import VectorStore


@dataclass
class Services:
    settings: Settings
    users: UserRepository
    lessons: LessonRepository
    courses: CourseRepository
    chat_sessions: ChatSessionRepository
    chat_messages: ChatMessageRepository
    recommendation_records: RecommendationRepository
    activity: ActivityRepository
    store: VectorStore
    retriever: ContextRetriever
    generator: TextGenerator
    dispatcher: JobDispatcher
    emails: EmailSender
    sessions: SessionService
    chat: ChatService
    recommendations: RecommendationService
    analytics: AnalyticsService
    events: EventService
    user_sync: UserSyncService
    job_handlers: Dict[str, JobHandler]


def _default_store(settings: Settings) -> VectorStore:
    from infra.vector.chroma_store import ChromaStore

    return ChromaStore(collection_name=settings.chroma_collection, persist_dir=settings.chroma_persist_dir)


def _default_generator(settings: Settings, retriever: ContextRetriever) -> TextGenerator:
    from infra.llm.ollama import OllamaGenerator
    from infra.llm.tools import build_search_resources_tool

    return OllamaGenerator(
        model=settings.chat_model,
        temperature=settings.chat_temperature,
        base_url=settings.ollama_base_url,
        tools=[build_search_resources_tool(retriever)],
        max_steps=settings.max_generation_steps,
    )


def _default_dispatcher(settings: Settings) -> JobDispatcher:
    if settings.job_dispatcher == "inngest":
        return InngestDispatcher(event_key=settings.inngest_event_key or "", base_url=settings.inngest_base_url)
    return LocalDispatcher()


def build_services(
    settings: Settings,
    session_factory: sessionmaker,
    *,
    store: Optional[VectorStore] = None,
    generator: Optional[TextGenerator] = None,
    dispatcher: Optional[JobDispatcher] = None,
    emails: Optional[EmailSender] = None,
) -> Services:
    users = SqlUserRepository(session_factory)
    lessons = SqlLessonRepository(session_factory)
    courses = SqlCourseRepository(session_factory)
    chat_sessions = SqlChatSessionRepository(session_factory)
    chat_messages = SqlChatMessageRepository(session_factory)
    recommendation_records = SqlRecommendationRepository(session_factory)
    activity = SqlActivityRepository(session_factory)

    store = store or _default_store(settings)
    retriever = ContextRetriever(
        store,
        lesson_top_k=settings.lesson_context_top_k,
        course_top_k=settings.course_top_k,
        resource_top_k=settings.resource_top_k,
    )
    generator = generator or _default_generator(settings, retriever)
    dispatcher = dispatcher or _default_dispatcher(settings)
    emails = emails or LoggingEmailSender()

    sessions = SessionService(chat_sessions)
    chat = ChatService(
        lessons,
        sessions,
        chat_messages,
        retriever,
        generator,
        context_top_k=settings.lesson_context_top_k,
        default_model=settings.chat_model,
    )
    recommendations = RecommendationService(
        retriever, courses, recommendation_records, dispatcher, top_k=settings.course_top_k
    )
    analytics = AnalyticsService(users, emails)
    events = EventService(users, activity, analytics)
    user_sync = UserSyncService(users, emails)

    services = Services(
        settings=settings,
        users=users,
        lessons=lessons,
        courses=courses,
        chat_sessions=chat_sessions,
        chat_messages=chat_messages,
        recommendation_records=recommendation_records,
        activity=activity,
        store=store,
        retriever=retriever,
        generator=generator,
        dispatcher=dispatcher,
        emails=emails,
        sessions=sessions,
        chat=chat,
        recommendations=recommendations,
        analytics=analytics,
        events=events,
        user_sync=user_sync,
        job_handlers={},
    )
    services.job_handlers = build_job_handlers(services)
    if isinstance(dispatcher, LocalDispatcher):
        for event_name, handler in services.job_handlers.items():
            dispatcher.register(event_name, handler)
    return services


def get_services(request: Request) -> Services:
    return request.app.state.services
