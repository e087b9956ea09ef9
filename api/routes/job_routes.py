"""
Entry point for an external job runner delivering events back to this service.
"""

import hmac
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header

from api.bootstrap import Services, get_services
from api.errors import AuthorizationError, NotFoundError
from api.schemas.chat_schemas import ApiResponse
from api.utils.logger import configure_logging

logger = configure_logging()

job_routes = APIRouter()


def require_job_secret(
    x_job_secret: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> None:
    expected = services.settings.job_secret
    if not expected:
        raise AuthorizationError("Job endpoint is not configured")
    if not x_job_secret or not hmac.compare_digest(x_job_secret.encode(), expected.encode()):
        raise AuthorizationError("Invalid job secret")


@job_routes.post("/jobs/{event_name:path}", response_model=ApiResponse, dependencies=[Depends(require_job_secret)])
async def run_job(
    event_name: str,
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> ApiResponse:
    handler = services.job_handlers.get(event_name)
    if handler is None:
        raise NotFoundError("Job handler", event_name)
    logger.info("event=job_received name=%s", event_name)
    return ApiResponse(data=await handler(payload))
