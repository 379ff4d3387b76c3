import uuid

import pytest

from src.nexus.domain.chat_request import NewMessage, ReplayMessages, parse_chat_request
from src.nexus.errors import ChatError

from tests.utils import chat_body


def test_single_message_is_parsed():
    body = chat_body(text="Write a haiku")
    req = parse_chat_request(body)
    assert req.chat_id == body["id"]
    assert isinstance(req.turn, NewMessage)
    assert req.turn.message.dump_parts() == [{"type": "text", "text": "Write a haiku"}]
    assert req.selected_visibility_type == "private"


def test_file_part_keeps_wire_names():
    body = chat_body()
    body["message"]["parts"].append(
        {"type": "file", "mediaType": "image/png", "name": "diagram.png", "url": "https://cdn.example.com/d.png"}
    )
    req = parse_chat_request(body)
    file_part = req.turn.message.dump_parts()[1]
    assert file_part["mediaType"] == "image/png"
    assert file_part["name"] == "diagram.png"


def test_replay_messages_are_accepted_permissively():
    body = chat_body()
    del body["message"]
    body["messages"] = [
        {"id": "m1", "role": "user", "parts": [{"type": "text", "text": "hi"}]},
        {"id": "m2", "role": "assistant", "parts": [{"type": "tool-approval", "approved": True}]},
    ]
    req = parse_chat_request(body)
    assert isinstance(req.turn, ReplayMessages)
    assert [m.id for m in req.turn.messages] == ["m1", "m2"]


def test_neither_or_both_shapes_is_bad_request():
    neither = chat_body()
    del neither["message"]
    with pytest.raises(ChatError) as exc:
        parse_chat_request(neither)
    assert exc.value.code == "bad_request:api"

    both = chat_body(messages=[])
    with pytest.raises(ChatError) as exc2:
        parse_chat_request(both)
    assert exc2.value.code == "bad_request:api"


def _with_part(part):
    body = chat_body()
    body["message"]["parts"] = [part]
    return body


@pytest.mark.parametrize(
    "body",
    [
        chat_body(id="not-a-uuid"),
        chat_body(selectedVisibilityType="friends"),
        _with_part({"type": "text", "text": ""}),
        _with_part({"type": "text", "text": "x" * 2001}),
        _with_part({"type": "file", "mediaType": "application/pdf", "name": "a.pdf", "url": "https://x.io/a.pdf"}),
        _with_part({"type": "file", "mediaType": "image/png", "name": "n" * 101, "url": "https://x.io/a.png"}),
        _with_part({"type": "file", "mediaType": "image/png", "name": "a.png", "url": "not a url"}),
        _with_part({"type": "audio", "text": "hi"}),
    ],
)
def test_structural_violations_are_invalid_data(body):
    with pytest.raises(ChatError) as exc:
        parse_chat_request(body)
    assert exc.value.code == "invalid_data:api"
    assert exc.value.cause


def test_message_role_must_be_user():
    body = chat_body()
    body["message"]["role"] = "assistant"
    with pytest.raises(ChatError) as exc:
        parse_chat_request(body)
    assert exc.value.code == "invalid_data:api"


def test_non_object_body_is_invalid_data():
    with pytest.raises(ChatError) as exc:
        parse_chat_request([str(uuid.uuid4())])
    assert exc.value.code == "invalid_data:api"


def test_text_at_the_length_limit_is_accepted():
    req = parse_chat_request(_with_part({"type": "text", "text": "x" * 2000}))
    assert len(req.turn.message.parts[0].text) == 2000
