"""
Chat routes: streamed lesson chat turn, history of the active session, session close.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from api.bootstrap import Services, get_services
from api.errors import GenerationError
from api.models import User
from api.schemas.chat_schemas import ApiResponse, ChatRequest, CloseSessionResponse
from api.services.chat_service import ChatTurn
from api.utils.auth import get_current_user
from api.utils.logger import configure_logging

logger = configure_logging()

chat_routes = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}


def _sse(payload: Any) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def ui_message_stream(turn: ChatTurn):
    """Text deltas as UI message stream events, ending with `[DONE]`."""
    try:
        yield _sse({"type": "start", "messageId": turn.message_id})
        try:
            async for delta in turn.stream():
                yield _sse({"type": "text-delta", "id": turn.message_id, "delta": delta})
        except GenerationError as e:
            yield _sse({"type": "error", "errorText": e.message})
        else:
            yield _sse({"type": "finish"})
        yield "data: [DONE]\n\n"
    finally:
        await turn.discard("stream_closed")


@chat_routes.post("/chat")
async def chat(
    body: ChatRequest,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Run one chat turn and stream the reply. Setup failures return a JSON error instead."""
    turn = await services.chat.start_turn(current_user, body.lesson_id, body.messages)
    await turn.open()
    return StreamingResponse(
        ui_message_stream(turn),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
        # the body may never be iterated; the opened generator still has to be closed
        background=BackgroundTask(turn.discard, "response_closed"),
    )


@chat_routes.get("/chat/{lesson_id}/history", response_model=ApiResponse)
async def chat_history(
    lesson_id: str,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> ApiResponse:
    messages = await services.chat.history(current_user, lesson_id)
    return ApiResponse(data={"messages": [m.to_wire() for m in messages]})


@chat_routes.post("/chat/{lesson_id}/close", response_model=ApiResponse)
async def close_chat_session(
    lesson_id: str,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> ApiResponse:
    session = await services.chat.close_session(current_user, lesson_id)
    return ApiResponse(data=CloseSessionResponse(session_id=session.id, status="closed").model_dump(by_alias=True))
