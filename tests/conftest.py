"""
Pytest configuration and shared fixtures for the test suite.
Ensures proper Python path and provides a throwaway SQLite database, seed data and
fakes for the vector store, the generator and the job dispatcher.
"""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from api.config import Settings, build_engine, build_session_factory, create_db  # noqa: E402
from api.models import Course, Lesson, User  # noqa: E402
from infra.llm.base import GenerationResult, TextGenerator  # noqa: E402
from infra.vector.store import SearchResult, VectorStore  # noqa: E402


# ----- fakes -----

class FakeVectorStore(VectorStore):
    """Returns canned results per scope kind and records every query."""

    def __init__(self):
        self.results: Dict[str, List[SearchResult]] = {}
        self.queries: List[Dict[str, Any]] = []
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.error: Optional[Exception] = None

    @staticmethod
    def kind_of(where: Optional[Dict[str, Any]]) -> Optional[str]:
        if not where:
            return None
        if "$and" in where:
            return "lesson"
        return where.get("type")

    def add_documents(self, documents):
        for doc in documents:
            self.documents[doc["id"]] = doc

    def query(self, text, k, where=None):
        self.queries.append({"text": text, "k": k, "where": where})
        if self.error is not None:
            raise self.error
        return list(self.results.get(self.kind_of(where), []))[:k]

    def delete_documents(self, ids):
        for _id in ids:
            self.documents.pop(_id, None)


class FakeGenerator(TextGenerator):
    """Streams fixed deltas then a GenerationResult; can fail at setup or mid-stream."""

    def __init__(self):
        self.deltas: List[str] = ["Closures ", "capture their ", "surrounding scope."]
        self.model_id = "fake-model"
        self.total_tokens: Optional[int] = 42
        self.parts: list = []
        self.fail_on_open: Optional[Exception] = None
        self.fail_after: Optional[int] = None
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def stream(self, system_prompt, messages):
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages)})
        if self.fail_on_open is not None:
            raise self.fail_on_open
        try:
            for i, delta in enumerate(self.deltas):
                if self.fail_after is not None and i == self.fail_after:
                    raise RuntimeError("model connection reset")
                yield delta
            yield GenerationResult(
                text="".join(self.deltas),
                model_id=self.model_id,
                total_tokens=self.total_tokens,
                parts=list(self.parts),
            )
        except GeneratorExit:
            self.closed = True
            raise


# ----- database -----

@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        auth_jwt_secret="test-secret",
        auth_jwt_algorithms=["HS256"],
        auth_jwt_audience=None,
        job_dispatcher="local",
        job_secret="job-secret",
        chat_model="fake-model",
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.database_url)
    create_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def seed(session_factory):
    """User u1 (external id ext_u1), lesson l1 in course c1, and a second course c2."""
    with session_factory() as db:
        db.add(
            User(
                id="u1",
                external_id="ext_u1",
                email="learner@example.com",
                firstname="Sam",
                lastname="Lee",
                username="samlee",
                level="beginner",
                delivery_preference="step-by-step",
                language_preference="en",
                learning_goals=["web development"],
            )
        )
        db.add(Course(id="c1", title="JavaScript Foundations", description="Functions, scope and closures"))
        db.add(Course(id="c2", title="Intro to Databases", description="Tables, keys and SQL"))
        db.flush()
        db.add(Lesson(id="l1", course_id="c1", title="Closures in JavaScript", body="A closure is a function..."))
        db.commit()
    return {"user_id": "u1", "external_id": "ext_u1", "lesson_id": "l1", "course_ids": ["c1", "c2"]}


@pytest.fixture
def user(seed, session_factory):
    with session_factory() as db:
        return db.get(User, seed["user_id"])


@pytest.fixture
def lesson(seed, session_factory):
    with session_factory() as db:
        return db.get(Lesson, seed["lesson_id"])


# ----- fakes -----

@pytest.fixture
def fake_store():
    return FakeVectorStore()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def search_result():
    def _make(id: str, /, score: float, content: str = "", **metadata):
        return SearchResult(id=id, score=score, content=content, metadata=metadata)

    return _make


# ----- composed services -----

@pytest.fixture
def services(settings, session_factory, seed, fake_store, fake_generator):
    from api.bootstrap import build_services
    from infra.jobs.dispatcher import LocalDispatcher

    return build_services(
        settings,
        session_factory,
        store=fake_store,
        generator=fake_generator,
        dispatcher=LocalDispatcher(),
    )
