from fastapi import APIRouter, Depends

from api.bootstrap import Services, get_services
from api.models import User
from api.schemas.chat_schemas import ApiResponse, EventRequest
from api.utils.auth import get_current_user

event_routes = APIRouter()


@event_routes.post("/events", response_model=ApiResponse)
async def record_event(
    body: EventRequest,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> ApiResponse:
    """Learning activity: session start/end, lesson and quiz completion."""
    result = await services.events.process_event(
        current_user.id,
        body.event_type,
        content_id=body.content_id,
        course_id=body.course_id,
        time_spent=body.time_spent,
        metadata=body.metadata,
    )
    return ApiResponse(data=result)
