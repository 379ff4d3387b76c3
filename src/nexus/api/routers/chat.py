from __future__ import annotations

from typing import AsyncIterator, Optional
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import StreamingResponse

from ...domain.chat_models import Chat, ChatWithMessages, DeleteResult, PinnedUpdate, StreamPart, VisibilityUpdate
from ...domain.chat_request import parse_chat_request
from ...errors import ChatError
from ...security.auth import User, get_optional_user
from ...services.chat_service import get_chat_service
from ...services.streaming import SSE_DONE, encode_sse


router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _event_stream(parts: AsyncIterator[StreamPart]):
    try:
        async for part in parts:
            yield encode_sse(part.model_dump_json(exclude_none=True))
        yield SSE_DONE
    finally:
        # Leaving the channel never stops the generation behind it
        detach = getattr(parts, "detach", None)
        if callable(detach):
            detach()


def _sse(parts: AsyncIterator[StreamPart]) -> StreamingResponse:
    return StreamingResponse(_event_stream(parts), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("", response_class=StreamingResponse)
async def post_chat(request: Request, user: Optional[User] = Depends(get_optional_user)):
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ChatError("invalid_data:api", cause="Request body is not valid JSON") from exc
    chat_request = parse_chat_request(payload)
    if user is None:
        raise ChatError("unauthorized:chat")

    service = get_chat_service()
    generation = service.begin(chat_request, user)
    # Subscribe before the task starts so no part is published ahead of us
    subscription = generation.channel.attach()
    service.spawn(generation)
    return _sse(subscription)


@router.delete("/messages/trailing", response_model=DeleteResult)
def delete_trailing_messages(
    id: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
) -> DeleteResult:
    if not id:
        raise ChatError("bad_request:api", "Parameter id is required.")
    deleted = get_chat_service().delete_trailing_messages(id, user)
    return DeleteResult(deleted_count=deleted)


@router.get("/{chat_id}/stream", response_class=StreamingResponse)
async def resume_chat_stream(chat_id: str, user: Optional[User] = Depends(get_optional_user)):
    if user is None:
        raise ChatError("unauthorized:chat")
    parts = get_chat_service().resume(chat_id, user)
    if parts is None:
        return Response(status_code=204)
    return _sse(parts)


@router.get("/{chat_id}", response_model=ChatWithMessages)
def get_chat(chat_id: str, user: Optional[User] = Depends(get_optional_user)) -> ChatWithMessages:
    return get_chat_service().get_chat(chat_id, user)


@router.delete("", response_model=Chat)
def delete_chat(
    id: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
) -> Chat:
    if not id:
        raise ChatError("bad_request:api", "Parameter id is required.")
    return get_chat_service().delete_chat(id, user)


@router.patch("/{chat_id}/visibility", response_model=Chat)
def update_chat_visibility(
    chat_id: str,
    body: VisibilityUpdate,
    user: Optional[User] = Depends(get_optional_user),
) -> Chat:
    return get_chat_service().update_visibility(chat_id, body.visibility, user)


@router.patch("/{chat_id}/pinned", response_model=Chat)
def update_chat_pinned(
    chat_id: str,
    body: PinnedUpdate,
    user: Optional[User] = Depends(get_optional_user),
) -> Chat:
    return get_chat_service().update_pinned(chat_id, body.pinned, user)
