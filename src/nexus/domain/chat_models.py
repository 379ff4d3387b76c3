from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant"]
Visibility = Literal["public", "private"]


class Chat(BaseModel):
    id: str
    owner_id: str
    title: str
    visibility: Visibility = "private"
    pinned: bool = False
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    id: str
    chat_id: str
    role: Role
    parts: List[Dict[str, Any]] = []
    attachments: List[Dict[str, Any]] = []
    created_at: datetime


class ChatWithMessages(BaseModel):
    chat: Chat
    messages: List[Message]


class ChatPage(BaseModel):
    chats: List[Chat]
    has_more: bool


class DeleteResult(BaseModel):
    deleted_count: int


class VisibilityUpdate(BaseModel):
    visibility: Visibility


class PinnedUpdate(BaseModel):
    pinned: bool


def first_text(parts: List[Dict[str, Any]]) -> Optional[str]:
    for part in parts:
        if part.get("type") == "text" and isinstance(part.get("text"), str):
            text = part["text"].strip()
            if text:
                return text
    return None


class StreamPart(BaseModel):
    """One unit of a generation stream (text fragment, control signal or embedded message)."""

    type: str = Field(min_length=1)
    id: Optional[str] = None
    data: Any = None
    transient: bool = False
