from __future__ import annotations

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ...domain.chat_models import ChatPage, DeleteResult
from ...errors import ChatError
from ...infrastructure.chat_store import get_chat_store
from ...security.auth import User, get_optional_user
from ...services import history


router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=ChatPage)
def get_history(
    limit: Optional[int] = Query(None),
    starting_after: Optional[str] = Query(None),
    ending_before: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
) -> ChatPage:
    if starting_after and ending_before:
        raise ChatError("bad_request:api", "Only one of starting_after or ending_before can be provided.")
    if user is None:
        raise ChatError("unauthorized:chat")
    return history.page(
        get_chat_store(),
        user.id,
        limit=limit,
        starting_after=starting_after,
        ending_before=ending_before,
    )


@router.delete("", response_model=DeleteResult)
def delete_history(user: Optional[User] = Depends(get_optional_user)) -> DeleteResult:
    if user is None:
        raise ChatError("unauthorized:chat")
    return history.delete_all(get_chat_store(), user.id)
