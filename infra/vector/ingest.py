from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from infra.vector.store import ScopeKind, VectorStore


def _default_splitter() -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(chunk_size=500, chunk_overlap=50)


@dataclass
class ContentIndexer:
    """
    Splits lesson, course and resource text into chunks and writes them to the store.

    Chunk metadata is `{id, type, chunkIndex, content[, url]}`; `id` is the owning
    content id so lesson-scoped searches can filter on it.
    """

    store: VectorStore
    splitter: RecursiveCharacterTextSplitter = field(default_factory=_default_splitter)

    def index(self, content_id: str, kind: ScopeKind, text: str, url: Optional[str] = None) -> int:
        chunks = [c.strip() for c in self.splitter.split_text(text or "") if c.strip()]
        if not chunks:
            return 0

        docs: List[Dict[str, Any]] = []
        for i, chunk in enumerate(chunks):
            meta: Dict[str, Any] = {"id": content_id, "type": kind, "chunkIndex": i, "content": chunk}
            if url:
                meta["url"] = url
            docs.append({"id": _chunk_id(kind, content_id, i), "text": chunk, "metadata": meta})

        self.store.add_documents(docs)
        return len(docs)

    def index_lesson(self, lesson) -> int:
        return self.index(lesson.id, "lesson", f"{lesson.title}\n\n{lesson.body or ''}")

    def index_course(self, course) -> int:
        parts = [course.title, course.description or ""]
        parts.extend(lesson.title for lesson in getattr(course, "lessons", None) or [])
        return self.index(course.id, "course", "\n\n".join(p for p in parts if p))

    def index_resource(self, resource_id: str, text: str, url: Optional[str] = None) -> int:
        return self.index(resource_id, "resource", text, url=url)


def _chunk_id(kind: str, content_id: str, index: int) -> str:
    raw = f"{kind}:{content_id}:{index}".encode("utf-8")
    return hashlib.sha1(raw).hexdigest()
