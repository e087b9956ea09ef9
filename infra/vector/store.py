from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ScopeKind = Literal["lesson", "course", "resource"]


@dataclass(frozen=True)
class SearchScope:
    """
    Filter predicate for a vector search.

    - lesson: chunks of one lesson (exact lesson id)
    - course: any course chunk
    - resource: any supplementary resource chunk
    """

    kind: ScopeKind
    lesson_id: Optional[str] = None

    @classmethod
    def lesson(cls, lesson_id: str) -> "SearchScope":
        if not lesson_id:
            raise ValueError("lesson scope requires a lesson id")
        return cls(kind="lesson", lesson_id=lesson_id)

    @classmethod
    def courses(cls) -> "SearchScope":
        return cls(kind="course")

    @classmethod
    def resources(cls) -> "SearchScope":
        return cls(kind="resource")

    def to_filter(self) -> Dict[str, Any]:
        if self.kind == "lesson":
            return {"$and": [{"type": "lesson"}, {"id": self.lesson_id}]}
        return {"type": self.kind}


@dataclass
class SearchResult:
    """One ranked hit; `score` is a similarity (higher is better)."""

    id: str
    score: float
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorStore(ABC):
    """
    Search index contract used by retrieval and indexing.

    Documents are `{ "id": str, "text": str, "metadata": dict }`.
    """

    @abstractmethod
    def add_documents(self, documents: List[Dict[str, Any]]) -> None:
        """Add or replace documents/chunks by id."""
        raise NotImplementedError

    @abstractmethod
    def query(self, text: str, k: int, where: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        raise NotImplementedError

    @abstractmethod
    def delete_documents(self, ids: List[str]) -> None:
        raise NotImplementedError
