from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Protocol
import logging
import os
import uuid

from ..domain.chat_models import Chat, Message
from .clock import MonotonicClock, ensure_utc


logger = logging.getLogger(__name__)


class ChatStore(Protocol):
    def create_chat(self, chat_id: str, owner_id: str, title: str, visibility: str = "private") -> Chat: ...

    def get_chat(self, chat_id: str) -> Optional[Chat]: ...

    def list_chats_by_owner(self, owner_id: str) -> List[Chat]: ...

    def update_visibility(self, chat_id: str, visibility: str) -> Chat: ...

    def update_pinned(self, chat_id: str, pinned: bool) -> Chat: ...

    def delete_chat(self, chat_id: str) -> Optional[Chat]: ...

    def delete_all_by_owner(self, owner_id: str) -> int: ...

    def add_message(
        self,
        chat_id: str,
        role: str,
        parts: List[Dict[str, Any]],
        message_id: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Message: ...

    def get_message(self, message_id: str) -> Optional[Message]: ...

    def list_messages(self, chat_id: str) -> List[Message]: ...

    def delete_messages_after(self, chat_id: str, timestamp: datetime) -> int: ...

    def count_user_messages_since(self, owner_id: str, since: datetime) -> int: ...


@dataclass
class _Chat:
    id: str
    owner_id: str
    title: str
    visibility: str
    pinned: bool
    created_at: datetime
    updated_at: datetime


@dataclass
class _Message:
    id: str
    chat_id: str
    role: str
    parts: List[Dict[str, Any]]
    created_at: datetime
    attachments: List[Dict[str, Any]] = field(default_factory=list)


class InMemoryChatStore:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._chats: Dict[str, _Chat] = {}
        self._by_owner: Dict[str, List[str]] = {}
        self._messages: Dict[str, List[_Message]] = {}
        self._message_index: Dict[str, str] = {}
        self._clock = MonotonicClock(clock)
        self._lock = RLock()

    def _chat_model(self, chat: _Chat) -> Chat:
        return Chat(**chat.__dict__)

    def _message_model(self, message: _Message) -> Message:
        return Message(
            id=message.id,
            chat_id=message.chat_id,
            role=message.role,  # type: ignore[arg-type]
            parts=[dict(p) for p in message.parts],
            attachments=[dict(a) for a in message.attachments],
            created_at=message.created_at,
        )

    def _require_chat(self, chat_id: str) -> _Chat:
        chat = self._chats.get(chat_id)
        if not chat:
            raise KeyError("Chat not found")
        return chat

    def create_chat(self, chat_id: str, owner_id: str, title: str, visibility: str = "private") -> Chat:
        with self._lock:
            if chat_id in self._chats:
                raise ValueError("Chat already exists")
            now = self._clock.now()
            chat = _Chat(
                id=chat_id,
                owner_id=owner_id,
                title=title or "New chat",
                visibility=visibility,
                pinned=False,
                created_at=now,
                updated_at=now,
            )
            self._chats[chat_id] = chat
            self._by_owner.setdefault(owner_id, []).append(chat_id)
            self._messages[chat_id] = []
            return self._chat_model(chat)

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        with self._lock:
            chat = self._chats.get(chat_id)
            if not chat:
                return None
            return self._chat_model(chat)

    def list_chats_by_owner(self, owner_id: str) -> List[Chat]:
        """Return the owner's chats, most recently active first (ties broken by id)."""
        with self._lock:
            out: List[Chat] = []
            for cid in self._by_owner.get(owner_id, []):
                chat = self._chats.get(cid)
                if not chat:
                    continue
                out.append(self._chat_model(chat))
            return sorted(out, key=lambda c: (c.updated_at, c.id), reverse=True)

    def update_visibility(self, chat_id: str, visibility: str) -> Chat:
        with self._lock:
            chat = self._require_chat(chat_id)
            chat.visibility = visibility
            return self._chat_model(chat)

    def update_pinned(self, chat_id: str, pinned: bool) -> Chat:
        with self._lock:
            chat = self._require_chat(chat_id)
            chat.pinned = pinned
            return self._chat_model(chat)

    def delete_chat(self, chat_id: str) -> Optional[Chat]:
        with self._lock:
            chat = self._chats.pop(chat_id, None)
            if not chat:
                return None
            owned = self._by_owner.get(chat.owner_id, [])
            if chat_id in owned:
                owned.remove(chat_id)
            for message in self._messages.pop(chat_id, []):
                self._message_index.pop(message.id, None)
            return self._chat_model(chat)

    def delete_all_by_owner(self, owner_id: str) -> int:
        with self._lock:
            chat_ids = list(self._by_owner.get(owner_id, []))
            deleted = 0
            for cid in chat_ids:
                if self.delete_chat(cid) is not None:
                    deleted += 1
            self._by_owner.pop(owner_id, None)
            return deleted

    def add_message(
        self,
        chat_id: str,
        role: str,
        parts: List[Dict[str, Any]],
        message_id: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Message:
        with self._lock:
            chat = self._require_chat(chat_id)
            mid = message_id or str(uuid.uuid4())
            if mid in self._message_index:
                raise ValueError("Message already exists")
            now = self._clock.now()
            msg = _Message(
                id=mid,
                chat_id=chat_id,
                role=role,
                parts=[dict(p) for p in parts],
                created_at=now,
                attachments=[dict(a) for a in (attachments or [])],
            )
            self._messages.setdefault(chat_id, []).append(msg)
            self._message_index[mid] = chat_id
            # bump chat updated_at
            chat.updated_at = now
            return self._message_model(msg)

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._lock:
            chat_id = self._message_index.get(message_id)
            if chat_id is None:
                return None
            for m in self._messages.get(chat_id, []):
                if m.id == message_id:
                    return self._message_model(m)
            return None

    def list_messages(self, chat_id: str) -> List[Message]:
        with self._lock:
            return [self._message_model(m) for m in self._messages.get(chat_id, [])]

    def delete_messages_after(self, chat_id: str, timestamp: datetime) -> int:
        """Delete messages created at or after ``timestamp``; return how many were removed."""
        cutoff = ensure_utc(timestamp)
        with self._lock:
            msgs = self._messages.get(chat_id, [])
            kept = [m for m in msgs if m.created_at < cutoff]
            for m in msgs:
                if m.created_at >= cutoff:
                    self._message_index.pop(m.id, None)
            self._messages[chat_id] = kept
            return len(msgs) - len(kept)

    def count_user_messages_since(self, owner_id: str, since: datetime) -> int:
        cutoff = ensure_utc(since)
        with self._lock:
            total = 0
            for cid in self._by_owner.get(owner_id, []):
                for m in self._messages.get(cid, []):
                    if m.role == "user" and m.created_at >= cutoff:
                        total += 1
            return total


_store: ChatStore | None = None


def get_chat_store() -> ChatStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("NEXUS_CHAT_STORE_IMPL", "memory").lower()
    if impl != "memory":
        logger.warning("Unknown NEXUS_CHAT_STORE_IMPL=%s; using in-memory store", impl)
    _store = InMemoryChatStore()
    return _store
