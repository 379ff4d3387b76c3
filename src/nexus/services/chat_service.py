from __future__ import annotations

"""Chat generation, resumption and chat-level mutations.

A generation runs as a background task that publishes to a stream channel, so
it keeps going (and its reply is persisted) even if the requesting client
disconnects. Late clients re-attach through ``resume``: to the open channel if
there is one, otherwise to a one-shot replay of the persisted assistant reply.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from ..domain.chat_models import Chat, ChatWithMessages, Message, StreamPart, first_text
from ..domain.chat_request import ChatRequest, NewMessage
from ..errors import ChatError
from ..infrastructure.chat_store import ChatStore, get_chat_store
from ..infrastructure.clock import utc_now
from ..observability.metrics import STREAM_RESUMES
from ..security.auth import User
from ..security.entitlements import enforce_quota
from ..security.ownership import Right, authorize
from .producer import Producer, ProducerUnavailable, get_producer, resolve_model, text_of
from .stream_channel import ChannelRegistry, StreamPartChannel, get_channel_registry
from .streaming import iter_as_async


logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 80
QUOTA_WINDOW = timedelta(hours=24)


@dataclass
class Generation:
    chat: Chat
    channel: StreamPartChannel
    history: List[Dict[str, str]]
    model: str
    new_chat: bool


def _title_from(parts: List[Dict]) -> str:
    text = first_text(parts) or "New chat"
    line = text.splitlines()[0].strip()
    return line[:TITLE_MAX_CHARS]


def append_message_part(message: Message) -> StreamPart:
    return StreamPart(type="data-appendMessage", data=message.model_dump_json(), transient=True)


class ChatService:
    def __init__(
        self,
        store: Optional[ChatStore] = None,
        registry: Optional[ChannelRegistry] = None,
        producer: Optional[Producer] = None,
        now: Callable = utc_now,
    ) -> None:
        self._store = store or get_chat_store()
        self._registry = registry or get_channel_registry()
        self._producer = producer or get_producer()
        self._now = now
        self._tasks: Set[asyncio.Task] = set()

    @property
    def store(self) -> ChatStore:
        return self._store

    def _owned_chat(self, chat_id: str, user: Optional[User], right: Right) -> Chat:
        chat = self._store.get_chat(chat_id)
        authorize(
            chat.owner_id if chat else None,
            user.id if user else None,
            right,
            surface="chat",
            visibility=chat.visibility if chat else "private",
        )
        if chat is None:
            raise ChatError("not_found:chat")
        return chat

    def begin(self, request: ChatRequest, user: User) -> Generation:
        """Check quota and ownership, persist the user turn and open a channel."""
        sent = self._store.count_user_messages_since(user.id, self._now() - QUOTA_WINDOW)
        enforce_quota(user.type, sent)

        chat = self._store.get_chat(request.chat_id)
        new_chat = chat is None
        if chat is None:
            if not isinstance(request.turn, NewMessage):
                raise ChatError("not_found:chat")
            chat = self._store.create_chat(
                request.chat_id,
                owner_id=user.id,
                title=_title_from(request.turn.message.dump_parts()),
                visibility=request.selected_visibility_type,
            )
            logger.info("Created chat %s for user %s", chat.id, user.id)
        else:
            authorize(chat.owner_id, user.id, Right.WRITE, surface="chat")

        if isinstance(request.turn, NewMessage):
            try:
                self._store.add_message(
                    chat.id,
                    role="user",
                    parts=request.turn.message.dump_parts(),
                    message_id=str(request.turn.message.id),
                )
            except ValueError as exc:
                raise ChatError("bad_request:chat", str(exc)) from exc
            history = [
                {"role": m.role, "content": text_of(m.parts)}
                for m in self._store.list_messages(chat.id)
            ]
        else:
            history = [
                {"role": m.role, "content": text_of(m.parts)}
                for m in request.turn.messages
            ]

        channel = self._registry.open(chat.id)
        return Generation(
            chat=chat,
            channel=channel,
            history=history,
            model=resolve_model(request.selected_chat_model),
            new_chat=new_chat,
        )

    async def run(self, generation: Generation) -> Optional[Message]:
        """Produce the reply, publish it part by part, persist it and close the channel."""
        channel = generation.channel
        part_id = uuid.uuid4().hex
        chunks: List[str] = []
        try:
            if generation.new_chat:
                channel.publish(StreamPart(type="data-chat-title", data=generation.chat.title, transient=True))
            async for delta in self._producer.stream(generation.history, generation.model):
                chunks.append(delta)
                channel.publish(StreamPart(type="text-delta", id=part_id, data=delta))
            message = self._store.add_message(
                generation.chat.id,
                role="assistant",
                parts=[{"type": "text", "text": "".join(chunks)}],
            )
            channel.publish(append_message_part(message))
            channel.publish(StreamPart(type="finish"))
            return message
        except ProducerUnavailable as exc:
            logger.warning("Generation for chat %s failed: %s", generation.chat.id, exc)
            channel.publish(StreamPart(type="error", data=ChatError(f"{exc.kind}:chat").to_payload()))
            return None
        except KeyError:
            logger.info("Chat %s was deleted during generation", generation.chat.id)
            channel.publish(StreamPart(type="error", data=ChatError("not_found:chat").to_payload()))
            return None
        except Exception:
            logger.exception("Generation for chat %s crashed", generation.chat.id)
            channel.publish(StreamPart(type="error", data=ChatError("offline:chat").to_payload()))
            return None
        finally:
            channel.close()

    def spawn(self, generation: Generation) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.run(generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def resume(self, chat_id: str, user: Optional[User]) -> Optional[AsyncIterator[StreamPart]]:
        """Return the parts a reconnecting client should see, or None if there is nothing to resume."""
        self._owned_chat(chat_id, user, Right.READ)
        channel = self._registry.latest(chat_id)
        if channel is not None and not channel.closed:
            STREAM_RESUMES.labels(outcome="attached").inc()
            return channel.attach()
        messages = self._store.list_messages(chat_id)
        if messages and messages[-1].role == "assistant":
            STREAM_RESUMES.labels(outcome="replayed").inc()
            return iter_as_async([append_message_part(messages[-1]), StreamPart(type="finish")])
        STREAM_RESUMES.labels(outcome="empty").inc()
        return None

    def get_chat(self, chat_id: str, user: Optional[User]) -> ChatWithMessages:
        chat = self._owned_chat(chat_id, user, Right.READ)
        return ChatWithMessages(chat=chat, messages=self._store.list_messages(chat_id))

    def delete_chat(self, chat_id: str, user: Optional[User]) -> Chat:
        self._owned_chat(chat_id, user, Right.WRITE)
        deleted = self._store.delete_chat(chat_id)
        if deleted is None:
            raise ChatError("not_found:chat")
        return deleted

    def update_visibility(self, chat_id: str, visibility: str, user: Optional[User]) -> Chat:
        self._owned_chat(chat_id, user, Right.WRITE)
        return self._store.update_visibility(chat_id, visibility)

    def update_pinned(self, chat_id: str, pinned: bool, user: Optional[User]) -> Chat:
        self._owned_chat(chat_id, user, Right.WRITE)
        return self._store.update_pinned(chat_id, pinned)

    def delete_trailing_messages(self, message_id: str, user: Optional[User]) -> int:
        """Delete a message and everything after it in its chat (edit/retry)."""
        message = self._store.get_message(message_id)
        if message is None:
            if user is None:
                raise ChatError("unauthorized:chat")
            raise ChatError("not_found:chat", f"Message with id {message_id} not found")
        self._owned_chat(message.chat_id, user, Right.WRITE)
        return self._store.delete_messages_after(message.chat_id, message.created_at)


_service: ChatService | None = None


def get_chat_service() -> ChatService:
    global _service
    if _service is None:
        _service = ChatService()
    return _service
