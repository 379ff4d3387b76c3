from __future__ import annotations

"""Validation of incoming chat generation requests.

Two request shapes are accepted:
- a single new user message (normal turn submission), validated strictly;
- a replay of every prior message (resuming after a tool approval), validated
  permissively because those messages are already-persisted content.

``parse_chat_request`` turns a raw JSON body into a ``ChatRequest`` whose
``turn`` is either ``NewMessage`` or ``ReplayMessages``.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, ValidationError

from ..errors import ChatError
from .chat_models import Visibility


TEXT_PART_MAX_CHARS = 2000
FILE_NAME_MAX_CHARS = 100
ALLOWED_MEDIA_TYPES = ("image/jpeg", "image/png")


class TextPart(BaseModel):
    type: Literal["text"]
    text: str = Field(min_length=1, max_length=TEXT_PART_MAX_CHARS)


class FilePart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["file"]
    media_type: Literal["image/jpeg", "image/png"] = Field(alias="mediaType")
    name: str = Field(min_length=1, max_length=FILE_NAME_MAX_CHARS)
    url: AnyUrl


MessagePart = Annotated[Union[TextPart, FilePart], Field(discriminator="type")]


class UserMessage(BaseModel):
    id: UUID
    role: Literal["user"]
    parts: List[MessagePart]

    def dump_parts(self) -> List[Dict[str, Any]]:
        return [part.model_dump(mode="json", by_alias=True) for part in self.parts]


class ReplayMessage(BaseModel):
    id: str
    role: str
    parts: List[Any]


class PostRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    message: Optional[UserMessage] = None
    messages: Optional[List[ReplayMessage]] = None
    selected_chat_model: str = Field(alias="selectedChatModel")
    selected_visibility_type: Visibility = Field(alias="selectedVisibilityType")


@dataclass(frozen=True)
class NewMessage:
    message: UserMessage
    kind: Literal["new"] = "new"


@dataclass(frozen=True)
class ReplayMessages:
    messages: List[ReplayMessage]
    kind: Literal["replay"] = "replay"


ChatTurn = Union[NewMessage, ReplayMessages]


@dataclass(frozen=True)
class ChatRequest:
    chat_id: str
    turn: ChatTurn
    selected_chat_model: str
    selected_visibility_type: Visibility


def _describe(exc: ValidationError) -> str:
    issues = []
    for err in exc.errors()[:5]:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        issues.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(issues)


def parse_chat_request(payload: Any) -> ChatRequest:
    """Validate a raw request body.

    Raises:
        ChatError(invalid_data:api) when the body is structurally invalid.
        ChatError(bad_request:api) when neither or both of ``message`` and
        ``messages`` are supplied.
    """
    if not isinstance(payload, dict):
        raise ChatError("invalid_data:api", cause="Request body must be a JSON object")
    try:
        body = PostRequestBody.model_validate(payload)
    except ValidationError as exc:
        raise ChatError("invalid_data:api", cause=_describe(exc)) from exc

    has_single = body.message is not None
    has_replay = body.messages is not None
    if has_single == has_replay:
        raise ChatError(
            "bad_request:api",
            "Exactly one of message or messages must be provided.",
        )

    turn: ChatTurn
    if body.message is not None:
        turn = NewMessage(message=body.message)
    else:
        turn = ReplayMessages(messages=list(body.messages or []))

    return ChatRequest(
        chat_id=str(body.id),
        turn=turn,
        selected_chat_model=body.selected_chat_model,
        selected_visibility_type=body.selected_visibility_type,
    )
