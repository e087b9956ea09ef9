"""Unit tests for SQL repository writes that race under concurrency."""
import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from api.errors import RepositoryError
from api.models import ChatMessage, ChatSession, Recommendation
from api.repositories.base import SessionSnapshot
from api.repositories.sql import _MAX_WRITE_ATTEMPTS, _DuplicateKey
from api.schemas.message_schemas import TextPart, UIMessage
from api.services.context_retriever import ContextRetriever
from api.services.recommendation_service import RecommendationService
from infra.jobs.dispatcher import LocalDispatcher
from infra.vector.store import SearchResult


def _run_together(workers: int, fn):
    """Call fn(i) from `workers` threads released at the same moment."""
    barrier = threading.Barrier(workers)

    def call(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(call, range(workers)))


@pytest.fixture
def chat_session(seed, session_repo):
    return session_repo.create("u1", "l1", SessionSnapshot(user_level="beginner", lesson_title="Closures in JavaScript"))


@pytest.mark.unit
class TestChatMessageRepository:
    def test_sequential_saves_number_messages_in_order(self, chat_session, message_repo):
        for i in range(3):
            message_repo.save(chat_session, UIMessage(id=f"m{i}", role="user", parts=[TextPart(text=f"q{i}")]))

        assert [m.id for m in message_repo.history("u1", "l1")] == ["m0", "m1", "m2"]

    def test_concurrent_saves_get_distinct_seq(self, chat_session, message_repo, session_factory):
        workers = 8

        _run_together(
            workers,
            lambda i: message_repo.save(
                chat_session, UIMessage(id=f"m{i}", role="user", parts=[TextPart(text=f"question {i}")])
            ),
        )

        with session_factory() as db:
            seqs = sorted(s for (s,) in db.query(ChatMessage.seq).filter(ChatMessage.session_id == chat_session.id))
            count = db.get(ChatSession, chat_session.id).message_count
        assert seqs == list(range(1, workers + 1))
        assert count == workers
        assert sorted(m.id for m in message_repo.history("u1", "l1")) == sorted(f"m{i}" for i in range(workers))

    def test_duplicate_seq_is_rejected_by_the_database(self, chat_session, session_factory):
        with session_factory() as db:
            for message_id in ("a", "b"):
                db.add(ChatMessage(message_id=message_id, session_id=chat_session.id, seq=1, role="user", parts=[]))
            with pytest.raises(IntegrityError):
                db.flush()

    def test_gives_up_after_repeated_seq_collisions(self, chat_session, message_repo):
        message = UIMessage(id="m1", role="user", parts=[TextPart(text="hi")])
        with patch.object(type(message_repo), "_insert", side_effect=_DuplicateKey()) as insert:
            with pytest.raises(RepositoryError):
                message_repo.save(chat_session, message)
        assert insert.call_count == _MAX_WRITE_ATTEMPTS


@pytest.mark.unit
class TestRecommendationRepository:
    def test_concurrent_first_upserts_leave_one_record(self, seed, recommendation_repo, session_factory):
        records = _run_together(
            6,
            lambda i: recommendation_repo.upsert("u1", query=f"query {i}", status="in_progress"),
        )

        assert len(records) == 6
        with session_factory() as db:
            rows = db.query(Recommendation).filter(Recommendation.user_id == "u1").all()
        assert len(rows) == 1
        assert rows[0].query in {f"query {i}" for i in range(6)}

    def test_upsert_overwrites_in_place(self, seed, recommendation_repo):
        first = recommendation_repo.upsert("u1", query="sql", status="in_progress")
        second = recommendation_repo.upsert("u1", query="sql", status="completed", course_ids=["c2"])

        assert second.id == first.id
        assert recommendation_repo.get_for_user("u1").course_ids == ["c2"]

    @pytest.mark.asyncio
    async def test_concurrent_processing_all_complete(self, seed, fake_store, course_repo, recommendation_repo):
        fake_store.results["course"] = [
            SearchResult(id="c1#0", score=0.9, content="", metadata={"id": "c1", "type": "course"})
        ]
        service = RecommendationService(ContextRetriever(fake_store), course_repo, recommendation_repo, LocalDispatcher())

        records = await asyncio.gather(*(service.process_recommendations("intro to js", "u1") for _ in range(4)))

        assert [r.status for r in records] == ["completed"] * 4
        final = recommendation_repo.get_for_user("u1")
        assert final.status == "completed"
        assert final.course_ids == ["c1"]
