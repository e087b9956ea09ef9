"""
Chat service: one lesson-chat turn from inbound message to persisted assistant reply.

Order of a turn:
  lesson lookup -> active session -> user message saved -> lesson context search
  -> tutor prompt -> streamed generation -> assistant message saved in the background

The user message is written before generation starts. The assistant message is written
only after the stream completes naturally, from a background task, so the caller never
waits on it. A failed background write is logged with the request's correlation id and
otherwise dropped. Partial replies (client disconnect, mid-stream failure) are discarded.
"""

import asyncio
import time
from typing import AsyncIterator, List, Optional

from api.errors import GenerationError, NotFoundError, ValidationError
from api.models import ChatSession
from api.prompt_builders import build_tutor_system_prompt
from api.repositories.base import ChatMessageRepository, LessonRepository
from api.schemas.message_schemas import MessageMetadata, TextPart, UIMessage, extract_text
from api.services.context_retriever import ContextRetriever
from api.services.session_service import SessionService
from api.utils.common import new_message_id
from api.utils.logger import configure_logging, current_request_id, format_fields
from infra.llm.base import GenerationResult, TextGenerator
from infra.vector.store import SearchResult

logger = configure_logging()

# strong refs so pending persistence tasks are not garbage collected
_background_tasks: "set[asyncio.Task]" = set()


class ChatTurn:
    """
    A prepared chat turn. Call `open()` to start generation (setup failures raise here,
    before any bytes are sent), then iterate `stream()` for text deltas.
    """

    def __init__(
        self,
        *,
        session: ChatSession,
        system_prompt: str,
        messages: List[UIMessage],
        context: List[SearchResult],
        generator: TextGenerator,
        message_repo: ChatMessageRepository,
        default_model: str = "unknown",
    ):
        self.session = session
        self.system_prompt = system_prompt
        self.messages = messages
        self.context = context
        self.generator = generator
        self.message_repo = message_repo
        self.default_model = default_model

        self.message_id = new_message_id("assistant")
        self.correlation_id = current_request_id()
        self.result: Optional[GenerationResult] = None
        self.persistence: Optional[asyncio.Task] = None

        self._chunks: List[str] = []
        self._started = 0.0
        self._stream = None
        self._first = None
        self._settled = False

    async def open(self) -> "ChatTurn":
        if self._stream is not None:
            return self
        self._started = time.monotonic()
        self._stream = self.generator.stream(self.system_prompt, self.messages)
        try:
            self._first = await self._stream.__anext__()
        except StopAsyncIteration:
            raise GenerationError("Generator produced no output") from None
        except Exception as e:
            logger.error(
                "event=generation_setup_failed %s error=%s",
                format_fields(correlation_id=self.correlation_id, session_id=self.session.id),
                e,
            )
            raise GenerationError("Failed to generate chat response", e) from e
        return self

    async def stream(self) -> AsyncIterator[str]:
        await self.open()
        item = self._first
        completed = False
        failed = False
        try:
            while True:
                if isinstance(item, GenerationResult):
                    self.result = item
                elif item:
                    self._chunks.append(item)
                    yield item
                try:
                    item = await self._stream.__anext__()
                except StopAsyncIteration:
                    break
            completed = True
            self._settled = True
        except Exception as e:
            failed = True
            logger.error(
                "event=generation_failed_mid_stream %s error=%s",
                format_fields(correlation_id=self.correlation_id, session_id=self.session.id),
                e,
            )
            raise GenerationError("Generation failed mid-stream", e) from e
        finally:
            if not completed:
                await self.discard("generation_failed" if failed else "stream_closed")

        self.persistence = asyncio.create_task(self.finalize())
        _background_tasks.add(self.persistence)
        self.persistence.add_done_callback(_background_tasks.discard)

    async def discard(self, reason: str = "response_closed") -> None:
        """Close an opened generator whose reply will not be stored. No-op once the turn is settled."""
        if self._stream is None or self._settled:
            return
        self._settled = True
        await self._stream.aclose()
        logger.info(
            "event=assistant_reply_discarded %s",
            format_fields(
                correlation_id=self.correlation_id,
                session_id=self.session.id,
                reason=reason,
                chars=sum(len(c) for c in self._chunks),
            ),
        )

    def build_assistant_message(self) -> UIMessage:
        result = self.result or GenerationResult(text="".join(self._chunks), model_id=self.default_model)
        parts = list(result.parts) or [TextPart(text=result.text, state="done")]
        metadata = MessageMetadata(
            model=result.model_id or self.default_model,
            tokens=result.total_tokens or 0,
            processing_time=int((time.monotonic() - self._started) * 1000),
        ).to_wire()
        return UIMessage(id=self.message_id, role="assistant", parts=parts, metadata=metadata)

    async def finalize(self) -> bool:
        """Persist the completed assistant reply once. Never raises; returns success."""
        try:
            message = self.build_assistant_message()
            await asyncio.to_thread(self.message_repo.save, self.session, message, message.metadata)
        except Exception as e:
            logger.error(
                "event=assistant_message_persist_failed %s error=%s",
                format_fields(
                    correlation_id=self.correlation_id,
                    session_id=self.session.id,
                    message_id=self.message_id,
                ),
                e,
            )
            return False
        logger.info(
            "event=assistant_message_persisted %s",
            format_fields(correlation_id=self.correlation_id, session_id=self.session.id, message_id=self.message_id),
        )
        return True


class ChatService:
    """Lesson chat: turns, history and session close."""

    def __init__(
        self,
        lessons: LessonRepository,
        sessions: SessionService,
        messages: ChatMessageRepository,
        retriever: ContextRetriever,
        generator: TextGenerator,
        *,
        context_top_k: int = 3,
        default_model: str = "unknown",
    ):
        self.lessons = lessons
        self.sessions = sessions
        self.messages = messages
        self.retriever = retriever
        self.generator = generator
        self.context_top_k = context_top_k
        self.default_model = default_model

    async def start_turn(self, user, lesson_id: str, messages: List[UIMessage]) -> ChatTurn:
        lesson = await asyncio.to_thread(self.lessons.get_by_id, lesson_id)
        if lesson is None:
            raise NotFoundError("Lesson", lesson_id)

        session = await self.sessions.get_or_create_active_session(user, lesson)

        latest = messages[-1] if messages else None
        if latest is not None and latest.role == "user":
            await asyncio.to_thread(self.messages.save, session, latest)

        query = extract_text(latest)
        if not query:
            raise ValidationError("No message content provided")

        results = await self.retriever.search_lesson_context(query, lesson.id, self.context_top_k)
        system_prompt = build_tutor_system_prompt(user, lesson, results)
        logger.debug(
            "event=chat_turn_prepared %s",
            format_fields(session_id=session.id, lesson_id=lesson.id, context_hits=len(results)),
        )

        return ChatTurn(
            session=session,
            system_prompt=system_prompt,
            messages=messages,
            context=results,
            generator=self.generator,
            message_repo=self.messages,
            default_model=self.default_model,
        )

    async def history(self, user, lesson_id: str) -> List[UIMessage]:
        return await asyncio.to_thread(self.messages.history, user.id, lesson_id)

    async def close_session(self, user, lesson_id: str) -> ChatSession:
        return await self.sessions.close_active_session(user.id, lesson_id)
