from __future__ import annotations

"""Cursor-based windowing over a user's chat list.

Chats are ordered by ``(updated_at, id)`` descending. A cursor is the id of a
boundary chat and is resolved to that chat's current sort key on every call,
so chats inserted or deleted between requests never shift a page.
"""

import logging
from typing import Optional, Tuple

from ..config import Settings
from ..domain.chat_models import Chat, ChatPage, DeleteResult
from ..errors import ChatError
from ..infrastructure.chat_store import ChatStore


logger = logging.getLogger(__name__)


def _sort_key(chat: Chat) -> Tuple:
    return (chat.updated_at, chat.id)


def clamp_limit(limit: Optional[int], settings: Optional[Settings] = None) -> int:
    settings = settings or Settings.from_env()
    if limit is None:
        return settings.history_default_limit
    return max(1, min(int(limit), settings.history_max_limit))


def _resolve_cursor(store: ChatStore, user_id: str, cursor: str) -> Tuple:
    chat = store.get_chat(cursor)
    # Other users' chats resolve the same as missing ones
    if chat is None or chat.owner_id != user_id:
        raise ChatError("not_found:chat", f"Chat with id {cursor} not found")
    return _sort_key(chat)


def page(
    store: ChatStore,
    user_id: str,
    limit: Optional[int] = None,
    starting_after: Optional[str] = None,
    ending_before: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> ChatPage:
    """Return one window of ``user_id``'s chats.

    ``starting_after`` selects the chats immediately older than the cursor,
    ``ending_before`` the chats immediately newer; both are returned newest
    first. ``has_more`` is true when further chats exist beyond the window in
    the direction of travel.
    """
    if starting_after and ending_before:
        raise ChatError("bad_request:api", "Only one of starting_after or ending_before can be provided.")
    size = clamp_limit(limit, settings)
    chats = store.list_chats_by_owner(user_id)

    if starting_after:
        cursor_key = _resolve_cursor(store, user_id, starting_after)
        older = [c for c in chats if _sort_key(c) < cursor_key]
        return ChatPage(chats=older[:size], has_more=len(older) > size)

    if ending_before:
        cursor_key = _resolve_cursor(store, user_id, ending_before)
        newer = [c for c in chats if _sort_key(c) > cursor_key]
        return ChatPage(chats=newer[-size:], has_more=len(newer) > size)

    return ChatPage(chats=chats[:size], has_more=len(chats) > size)


def delete_all(store: ChatStore, user_id: str) -> DeleteResult:
    deleted = store.delete_all_by_owner(user_id)
    logger.info("Deleted %d chat(s) for user %s", deleted, user_id)
    return DeleteResult(deleted_count=deleted)
