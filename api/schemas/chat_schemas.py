"""
Request and response bodies for chat, recommendation, event and job routes.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Literal, Optional

from api.schemas.message_schemas import UIMessage


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_CamelModel):
    lesson_id: str = Field(min_length=1)
    messages: list[UIMessage] = Field(min_length=1)


class ChatHistoryResponse(BaseModel):
    messages: list[dict[str, Any]]


class CloseSessionResponse(_CamelModel):
    session_id: str
    status: str


class RecommendationRequest(BaseModel):
    query: str = Field(min_length=3, max_length=500)


class RecommendationResponse(_CamelModel):
    status: Literal["processing", "failed"]
    message: str
    job_id: Optional[str] = None


class RecommendationRecord(_CamelModel):
    query: str
    status: str
    message: Optional[str] = None
    reason: Optional[str] = None
    course_ids: list[str] = []
    updated_at: Optional[str] = None


class EventRequest(_CamelModel):
    event_type: Literal["session_started", "lesson_completed", "quiz_completed", "session_ended"]
    content_id: Optional[str] = None
    course_id: Optional[str] = None
    time_spent: Optional[int] = Field(default=None, ge=0)
    metadata: Optional[dict[str, Any]] = None


class ProcessRecommendationRequest(_CamelModel):
    """Payload of the `course/recommendation.triggered` job."""
    query: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class ApiResponse(BaseModel):
    success: bool = True
    data: Optional[Any] = None
    error: Optional[dict[str, Any]] = None
