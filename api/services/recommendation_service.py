"""
Course recommendations: request (dispatch a job) and process (search, rank, upsert).

The per-user Recommendation record is the only thing shared between the two halves:
in_progress while processing, then completed or failed.
"""

import asyncio
from typing import Any, Dict, List

from api.errors import DomainError, SearchError
from api.models import Recommendation, RecommendationStatus
from api.repositories.base import CourseRepository, RecommendationRepository
from api.services.context_retriever import ContextRetriever
from api.utils.common import dedupe
from api.utils.logger import configure_logging, log_request
from infra.jobs.dispatcher import JobDispatcher
from infra.vector.store import SearchResult

logger = configure_logging()

RECOMMENDATION_EVENT = "course/recommendation.triggered"

NO_RESULTS_MESSAGE = "No relevant courses found for your query."
FAILED_MESSAGE = "Failed to generate recommendations. Please try again later."


def recommendation_reason(results: List[SearchResult]) -> str:
    """Template reason bucketed by the top score (results are ranked, best first)."""
    top_score = results[0].score if results else 0.0
    count = len(results)
    if top_score > 0.8:
        return f"Found {count} highly relevant courses based on your query with excellent content match."
    if top_score > 0.6:
        return f"Found {count} relevant courses that align well with your learning interests."
    return f"Found {count} courses that may be related to your query."


class RecommendationService:
    def __init__(
        self,
        retriever: ContextRetriever,
        courses: CourseRepository,
        recommendations: RecommendationRepository,
        dispatcher: JobDispatcher,
        *,
        top_k: int = 10,
    ):
        self.retriever = retriever
        self.courses = courses
        self.recommendations = recommendations
        self.dispatcher = dispatcher
        self.top_k = top_k

    async def request_recommendations(self, query: str, user_id: str) -> Dict[str, Any]:
        """Dispatch the processing job and return immediately with its id."""
        try:
            job_id = await self.dispatcher.send(RECOMMENDATION_EVENT, {"query": query, "userId": user_id})
        except Exception as e:
            logger.error("event=recommendation_dispatch_failed user_id=%s error=%s", user_id, e)
            return {"status": "failed", "message": "Failed to process recommendation request"}
        return {"status": "processing", "message": "Recommendations are being processed", "jobId": job_id}

    async def process_recommendations(self, query: str, user_id: str) -> Recommendation:
        """
        Background stage. Any failure overwrites the record to `failed` and is re-raised so
        the job runner can observe it.
        """
        with log_request(logger, f"process_recommendations user_id={user_id}"):
            try:
                await self._upsert(user_id, query=query, status=RecommendationStatus.IN_PROGRESS)

                results = await self.retriever.search_courses(query, self.top_k)
                if not results:
                    return await self._upsert(
                        user_id,
                        query=query,
                        status=RecommendationStatus.COMPLETED,
                        message=NO_RESULTS_MESSAGE,
                        course_ids=[],
                    )

                matched_ids = dedupe(r.metadata.get("id") for r in results)
                found = await asyncio.to_thread(self.courses.get_by_ids, matched_ids)
                course_ids = [c.id for c in found]

                return await self._upsert(
                    user_id,
                    query=query,
                    status=RecommendationStatus.COMPLETED,
                    reason=recommendation_reason(results),
                    message=f"Found {len(course_ids)} courses that match your query.",
                    course_ids=course_ids,
                )
            except Exception as e:
                await self._mark_failed(user_id, query)
                if isinstance(e, DomainError):
                    raise
                raise SearchError("Failed to process recommendations", e) from e

    async def get_for_user(self, user_id: str) -> Recommendation | None:
        return await asyncio.to_thread(self.recommendations.get_for_user, user_id)

    async def _upsert(self, user_id: str, *, status: RecommendationStatus, **fields: Any) -> Recommendation:
        return await asyncio.to_thread(self.recommendations.upsert, user_id, status=status.value, **fields)

    async def _mark_failed(self, user_id: str, query: str) -> None:
        try:
            await self._upsert(
                user_id,
                query=query,
                status=RecommendationStatus.FAILED,
                message=FAILED_MESSAGE,
                course_ids=[],
            )
        except Exception as e:
            logger.error("event=recommendation_fail_state_not_saved user_id=%s error=%s", user_id, e)
