from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.bootstrap import Services, get_services
from api.errors import NotFoundError
from api.models import User
from api.schemas.chat_schemas import ApiResponse, RecommendationRecord, RecommendationRequest, RecommendationResponse
from api.utils.auth import get_current_user
from api.utils.common import iso_format

recommendation_routes = APIRouter()


@recommendation_routes.post("/recommendations", response_model=ApiResponse)
async def request_recommendations(
    body: RecommendationRequest,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Queue recommendation processing; 202 with a job id, or 503 when dispatch failed."""
    result = RecommendationResponse.model_validate(
        await services.recommendations.request_recommendations(body.query.strip(), current_user.id)
    )
    accepted = result.status == "processing"
    payload = ApiResponse(success=accepted, data=result.model_dump(by_alias=True, exclude_none=True))
    return JSONResponse(status_code=202 if accepted else 503, content=payload.model_dump())


@recommendation_routes.get("/recommendations", response_model=ApiResponse)
async def get_recommendations(
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> ApiResponse:
    record = await services.recommendations.get_for_user(current_user.id)
    if record is None:
        raise NotFoundError("Recommendation")
    return ApiResponse(
        data=RecommendationRecord(
            query=record.query,
            status=record.status,
            message=record.message,
            reason=record.reason,
            course_ids=list(record.course_ids or []),
            updated_at=iso_format(record.updated_at),
        ).model_dump(by_alias=True)
    )
