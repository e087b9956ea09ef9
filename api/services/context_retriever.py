"""
Context retrieval: free-text query + scope -> ranked passages from the vector index.
"""

import asyncio
from typing import List, Optional

from api.errors import SearchError
from api.utils.logger import configure_logging
from infra.vector.store import SearchResult, SearchScope, VectorStore

logger = configure_logging()


class ContextRetriever:
    """Scoped, ranked vector search. An empty hit list is a normal result."""

    def __init__(
        self,
        store: VectorStore,
        *,
        lesson_top_k: int = 3,
        course_top_k: int = 10,
        resource_top_k: int = 5,
    ):
        self.store = store
        self._default_top_k = {"lesson": lesson_top_k, "course": course_top_k, "resource": resource_top_k}

    async def search(self, query: str, scope: SearchScope, top_k: Optional[int] = None) -> List[SearchResult]:
        k = top_k or self._default_top_k[scope.kind]
        try:
            # chroma's client is synchronous
            results = await asyncio.to_thread(self.store.query, query, k, scope.to_filter())
        except Exception as e:
            logger.error("event=vector_search_failed scope=%s error=%s", scope.kind, e)
            raise SearchError(f"Vector search failed for {scope.kind} scope", e) from e

        ranked = sorted(results, key=lambda r: r.score, reverse=True)
        logger.debug("event=vector_search scope=%s k=%s hits=%s", scope.kind, k, len(ranked))
        return ranked

    async def search_lesson_context(self, query: str, lesson_id: str, top_k: Optional[int] = None) -> List[SearchResult]:
        return await self.search(query, SearchScope.lesson(lesson_id), top_k)

    async def search_courses(self, query: str, top_k: Optional[int] = None) -> List[SearchResult]:
        return await self.search(query, SearchScope.courses(), top_k)

    async def search_resources(self, query: str, top_k: Optional[int] = None) -> List[SearchResult]:
        return await self.search(query, SearchScope.resources(), top_k)
