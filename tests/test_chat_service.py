import asyncio
import uuid
from typing import AsyncIterator, Dict, List

import pytest

from src.nexus.domain.chat_request import parse_chat_request
from src.nexus.errors import ChatError
from src.nexus.infrastructure.chat_store import InMemoryChatStore
from src.nexus.security.auth import User
from src.nexus.services.chat_service import ChatService
from src.nexus.services.producer import FallbackProducer, ProducerUnavailable, resolve_model
from src.nexus.services.stream_channel import ChannelRegistry
from src.nexus.config import Settings

from tests.utils import chat_body


ALICE = User(id="alice", email="alice@example.com")
BOB = User(id="bob", email="bob@example.com")


class ScriptedProducer:
    def __init__(self, chunks: List[str], fail_with: str = "") -> None:
        self.chunks = chunks
        self.fail_with = fail_with
        self.seen: List[List[Dict[str, str]]] = []

    async def stream(self, history, model) -> AsyncIterator[str]:
        self.seen.append(history)
        for chunk in self.chunks:
            yield chunk
        if self.fail_with:
            raise ProducerUnavailable(self.fail_with, "provider down")


def _service(producer=None):
    return ChatService(
        store=InMemoryChatStore(),
        registry=ChannelRegistry(),
        producer=producer or ScriptedProducer(["Hel", "lo"]),
    )


async def _collect(sub):
    return [part async for part in sub]


def _generate(service, body, user=ALICE):
    async def scenario():
        generation = service.begin(parse_chat_request(body), user)
        sub = generation.channel.attach()
        await service.spawn(generation)
        return generation, await _collect(sub)

    return asyncio.run(scenario())


def test_new_chat_streams_title_deltas_message_and_finish():
    service = _service()
    body = chat_body(text="Say hello")
    generation, parts = _generate(service, body)

    assert [p.type for p in parts] == ["data-chat-title", "text-delta", "text-delta", "data-appendMessage", "finish"]
    assert parts[0].data == "Say hello"
    assert "".join(p.data for p in parts if p.type == "text-delta") == "Hello"
    assert generation.channel.closed

    messages = service.store.list_messages(body["id"])
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[-1].parts == [{"type": "text", "text": "Hello"}]


def test_follow_up_turn_sends_full_history_without_title():
    producer = ScriptedProducer(["ok"])
    service = _service(producer)
    body = chat_body(text="first")
    _generate(service, body)
    _, parts = _generate(service, chat_body(chat_id=body["id"], text="second"))

    assert parts[0].type == "text-delta"
    assert [m["content"] for m in producer.seen[-1]] == ["first", "ok", "second"]


def test_other_user_cannot_post_into_chat():
    service = _service()
    body = chat_body()
    _generate(service, body)
    with pytest.raises(ChatError) as exc:
        service.begin(parse_chat_request(chat_body(chat_id=body["id"])), BOB)
    assert exc.value.code == "forbidden:chat"


def test_replay_into_unknown_chat_is_not_found():
    body = chat_body()
    del body["message"]
    body["messages"] = [{"id": "m1", "role": "user", "parts": []}]
    with pytest.raises(ChatError) as exc:
        _service().begin(parse_chat_request(body), ALICE)
    assert exc.value.code == "not_found:chat"


def test_quota_is_enforced_before_anything_is_stored():
    service = _service()
    guest = User(id="g1", email="guest-1", type="guest")
    chat_id = str(uuid.uuid4())
    service.store.create_chat(chat_id, "g1", "t")
    for _ in range(20):
        service.store.add_message(chat_id, "user", [{"type": "text", "text": "hi"}])
    with pytest.raises(ChatError) as exc:
        service.begin(parse_chat_request(chat_body(chat_id=chat_id)), guest)
    assert exc.value.code == "quota_exceeded:chat"
    assert len(service.store.list_messages(chat_id)) == 20


def test_producer_failure_becomes_error_part():
    service = _service(ScriptedProducer(["partial"], fail_with="rate_limited"))
    body = chat_body()
    generation, parts = _generate(service, body)
    assert parts[-1].type == "error"
    assert parts[-1].data["code"] == "rate_limited:chat"
    assert generation.channel.closed
    assert [m.role for m in service.store.list_messages(body["id"])] == ["user"]


class CrashingProducer:
    async def stream(self, history, model) -> AsyncIterator[str]:
        yield "x"
        raise RuntimeError("bad credentials")


def test_unexpected_producer_error_ends_stream_with_error_part(caplog):
    service = _service(CrashingProducer())
    body = chat_body()

    async def scenario():
        generation = service.begin(parse_chat_request(body), ALICE)
        sub = generation.channel.attach()
        task = service.spawn(generation)
        parts = await _collect(sub)
        await task
        return generation, task, parts

    with caplog.at_level("ERROR"):
        generation, task, parts = asyncio.run(scenario())
    assert [p.type for p in parts] == ["data-chat-title", "text-delta", "error"]
    assert parts[-1].data["code"] == "offline:chat"
    assert task.exception() is None
    assert generation.channel.closed
    assert "crashed" in caplog.text


def test_resume_attaches_to_open_generation():
    async def scenario():
        service = _service()
        generation = service.begin(parse_chat_request(chat_body()), ALICE)
        resumed = service.resume(generation.chat.id, ALICE)
        await service.spawn(generation)
        return await _collect(resumed)

    parts = asyncio.run(scenario())
    assert [p.type for p in parts][-2:] == ["data-appendMessage", "finish"]


def test_resume_after_completion_replays_last_assistant_message():
    service = _service()
    body = chat_body()
    _generate(service, body)

    parts = asyncio.run(_collect(service.resume(body["id"], ALICE)))
    assert [p.type for p in parts] == ["data-appendMessage", "finish"]
    assert parts[0].transient is True
    assert '"role":"assistant"' in parts[0].data


def test_resume_with_nothing_to_replay_returns_none():
    service = _service()
    chat_id = str(uuid.uuid4())
    service.store.create_chat(chat_id, "alice", "t")
    service.store.add_message(chat_id, "user", [{"type": "text", "text": "hi"}])
    assert service.resume(chat_id, ALICE) is None


def test_resume_respects_visibility():
    service = _service()
    body = chat_body()
    _generate(service, body)
    with pytest.raises(ChatError) as exc:
        service.resume(body["id"], BOB)
    assert exc.value.code == "forbidden:chat"

    service.update_visibility(body["id"], "public", ALICE)
    assert service.resume(body["id"], BOB) is not None
    with pytest.raises(ChatError):
        service.update_pinned(body["id"], True, BOB)


def test_delete_trailing_messages_removes_message_and_later_ones():
    service = _service()
    body = chat_body()
    _generate(service, body)
    _generate(service, chat_body(chat_id=body["id"], text="again"))
    messages = service.store.list_messages(body["id"])
    assert len(messages) == 4

    assert service.delete_trailing_messages(messages[2].id, ALICE) == 2
    assert [m.id for m in service.store.list_messages(body["id"])] == [m.id for m in messages[:2]]

    with pytest.raises(ChatError) as exc:
        service.delete_trailing_messages(messages[0].id, BOB)
    assert exc.value.code == "forbidden:chat"


def test_delete_chat_and_missing_chat():
    service = _service()
    body = chat_body()
    _generate(service, body)
    assert service.delete_chat(body["id"], ALICE).id == body["id"]
    with pytest.raises(ChatError) as exc:
        service.get_chat(body["id"], ALICE)
    assert exc.value.code == "not_found:chat"


def test_fallback_producer_echoes_last_user_message():
    async def scenario():
        producer = FallbackProducer()
        return "".join([c async for c in producer.stream([{"role": "user", "content": "ping"}], "m")])

    assert "You said: ping" in asyncio.run(scenario())


def test_resolve_model_maps_aliases():
    settings = Settings(llm_model="gpt-test")
    assert resolve_model("chat-model", settings) == "gpt-test"
    assert resolve_model(None, settings) == "gpt-test"
    assert resolve_model("gpt-4.1", settings) == "gpt-4.1"
