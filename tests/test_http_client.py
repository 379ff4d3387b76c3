import asyncio
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from src.nexus.api.main import app
from src.nexus.client import ChatApiClient, ResumeCoordinator, ResumeState, ScopedStore
from src.nexus.client.resume import MESSAGES_FIELD
from src.nexus.domain.chat_models import Message
from src.nexus.errors import ChatError
from src.nexus.infrastructure.chat_store import get_chat_store
from tests.utils import chat_body, token_for


sync_client = TestClient(app)


def _api(user="alice"):
    return ChatApiClient("http://testserver", token=token_for(user), transport=httpx.ASGITransport(app=app))


def _completed_chat():
    body = chat_body(text="hello")
    res = sync_client.post("/chat", json=body, headers={"Authorization": f"Bearer {token_for('alice')}"})
    assert res.status_code == 200
    return body["id"]


def test_resume_stream_replays_completed_reply():
    chat_id = _completed_chat()

    async def scenario():
        api = _api()
        try:
            stream = await api.resume_stream(chat_id)
            return [part async for part in stream]
        finally:
            await api.aclose()

    parts = asyncio.run(scenario())
    assert [p.type for p in parts] == ["data-appendMessage", "finish"]


def test_resume_stream_returns_none_on_no_content():
    chat_id = str(uuid.uuid4())
    store = get_chat_store()
    store.create_chat(chat_id, "alice", "Pending")
    store.add_message(chat_id, "user", [{"type": "text", "text": "hi"}])

    async def scenario():
        api = _api()
        try:
            return await api.resume_stream(chat_id)
        finally:
            await api.aclose()

    assert asyncio.run(scenario()) is None


def test_errors_come_back_as_chat_errors():
    chat_id = _completed_chat()

    async def scenario():
        api = _api("bob")
        try:
            await api.resume_stream(chat_id)
        finally:
            await api.aclose()

    with pytest.raises(ChatError) as exc:
        asyncio.run(scenario())
    assert exc.value.code == "forbidden:chat"


def test_coordinator_over_http_applies_server_reply():
    chat_id = _completed_chat()
    persisted = get_chat_store().list_messages(chat_id)
    # The view mounted before the reply arrived, so it only knows the user turn
    initial = [Message.model_validate(persisted[0].model_dump())]
    store = ScopedStore()

    async def scenario():
        api = _api()
        try:
            coordinator = ResumeCoordinator(chat_id, initial, api.resume_stream, store)
            await coordinator.start()
            await coordinator.stop()
            return coordinator
        finally:
            await api.aclose()

    coordinator = asyncio.run(scenario())
    assert coordinator.state == ResumeState.DONE
    assert [m.role for m in store.get(MESSAGES_FIELD)] == ["user", "assistant"]


def test_set_visibility_round_trip():
    chat_id = _completed_chat()

    async def scenario():
        api = _api()
        try:
            return await api.set_visibility(chat_id, "public")
        finally:
            await api.aclose()

    assert asyncio.run(scenario())["visibility"] == "public"
