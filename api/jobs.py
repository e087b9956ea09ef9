"""
Background job handlers, keyed by event name.

The same handlers run in-process (LocalDispatcher) or behind `POST /api/jobs/{event_name}`
when an external runner delivers the event.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from api.schemas.chat_schemas import ProcessRecommendationRequest
from api.schemas.sync_schemas import IdentityWebhookEvent
from api.services.recommendation_service import RECOMMENDATION_EVENT
from infra.jobs.dispatcher import JobHandler

if TYPE_CHECKING:
    from api.bootstrap import Services

USER_CREATED_EVENT = "clerk/user.created"
USER_UPDATED_EVENT = "clerk/user.updated"
USER_DELETED_EVENT = "clerk/user.deleted"


def build_job_handlers(services: "Services") -> Dict[str, JobHandler]:
    async def process_recommendations(payload: Dict[str, Any]) -> Dict[str, Any]:
        req = ProcessRecommendationRequest.model_validate(payload)
        record = await services.recommendations.process_recommendations(req.query, req.user_id)
        return {"status": record.status, "courseIds": list(record.course_ids or [])}

    async def user_created(payload: Dict[str, Any]) -> Dict[str, Any]:
        return await services.user_sync.user_created(IdentityWebhookEvent.model_validate(payload).data)

    async def user_updated(payload: Dict[str, Any]) -> Dict[str, Any]:
        return await services.user_sync.user_updated(IdentityWebhookEvent.model_validate(payload).data)

    async def user_deleted(payload: Dict[str, Any]) -> Dict[str, Any]:
        return await services.user_sync.user_deleted(IdentityWebhookEvent.model_validate(payload).data)

    return {
        RECOMMENDATION_EVENT: process_recommendations,
        USER_CREATED_EVENT: user_created,
        USER_UPDATED_EVENT: user_updated,
        USER_DELETED_EVENT: user_deleted,
    }
