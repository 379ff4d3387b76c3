from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from fastapi.testclient import TestClient


def token_for(user_id: str, *, user_type: str = "regular", email: Optional[str] = None) -> str:
    from src.nexus.security.auth import User, create_access_token

    return create_access_token(User(id=user_id, email=email or f"{user_id}@example.com", type=user_type))


def headers_for(user_id: str, *, user_type: str = "regular") -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user_id, user_type=user_type)}"}


def guest_headers(client: TestClient) -> Dict[str, str]:
    res = client.post("/auth/guest")
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


def chat_body(chat_id: Optional[str] = None, text: str = "Hello there", **overrides: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "id": chat_id or str(uuid.uuid4()),
        "message": {
            "id": str(uuid.uuid4()),
            "role": "user",
            "parts": [{"type": "text", "text": text}],
        },
        "selectedChatModel": "chat-model",
        "selectedVisibilityType": "private",
    }
    body.update(overrides)
    return body


def sse_payloads(text: str) -> List[Any]:
    """Decode an SSE body into its data payloads; the terminal [DONE] marker is kept as a string."""
    out: List[Any] = []
    for line in text.splitlines():
        if not line.startswith("data:"):
            continue
        raw = line[len("data:"):].strip()
        out.append(raw if raw == "[DONE]" else json.loads(raw))
    return out
