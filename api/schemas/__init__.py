"""
API schemas package. Import from submodules or from this package.

Example:
    from api.schemas import ChatRequest, UIMessage
    from api.schemas.message_schemas import ToolPart
"""

from api.schemas.message_schemas import (
    DataPart,
    FilePart,
    MessageMetadata,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
    UnknownPart,
)
from api.schemas.chat_schemas import (
    ApiResponse,
    ChatHistoryResponse,
    ChatRequest,
    CloseSessionResponse,
    EventRequest,
    ProcessRecommendationRequest,
    RecommendationRecord,
    RecommendationRequest,
    RecommendationResponse,
)
from api.schemas.sync_schemas import EmailAddress, IdentityUser, IdentityWebhookEvent

__all__ = [
    # messages
    "DataPart",
    "FilePart",
    "MessageMetadata",
    "MessagePart",
    "ReasoningPart",
    "SourceDocumentPart",
    "SourceUrlPart",
    "StepStartPart",
    "TextPart",
    "ToolPart",
    "UIMessage",
    "UnknownPart",
    # routes
    "ApiResponse",
    "ChatHistoryResponse",
    "ChatRequest",
    "CloseSessionResponse",
    "EventRequest",
    "ProcessRecommendationRequest",
    "RecommendationRecord",
    "RecommendationRequest",
    "RecommendationResponse",
    # identity sync
    "EmailAddress",
    "IdentityUser",
    "IdentityWebhookEvent",
]
