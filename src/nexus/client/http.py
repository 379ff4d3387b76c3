from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..domain.chat_models import StreamPart
from ..errors import ChatError, ERROR_KINDS, SURFACES


def _error_from(response: httpx.Response) -> ChatError:
    try:
        payload: Dict[str, Any] = response.json()
    except ValueError:
        payload = {}
    code = str(payload.get("code") or "")
    kind, _, surface = code.partition(":")
    if kind in ERROR_KINDS and (surface or "api") in SURFACES:
        return ChatError(code, payload.get("message"), payload.get("cause"))
    return ChatError("offline:api", f"Unexpected response status {response.status_code}")


class ChatApiClient:
    """Thin async client for the chat endpoints a conversation view needs."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def resume_stream(self, chat_id: str) -> Optional[AsyncIterator[StreamPart]]:
        """Re-attach to the chat's stream; None when the server has nothing to resume."""
        request = self._client.build_request("GET", f"/chat/{chat_id}/stream")
        response = await self._client.send(request, stream=True)
        if response.status_code == 204:
            await response.aclose()
            return None
        if response.status_code >= 400:
            await response.aread()
            await response.aclose()
            raise _error_from(response)
        return self._parts(response)

    async def _parts(self, response: httpx.Response) -> AsyncIterator[StreamPart]:
        try:
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                payload = line[len("data:"):].strip()
                if payload == "[DONE]":
                    break
                yield StreamPart.model_validate(json.loads(payload))
        finally:
            await response.aclose()

    async def set_visibility(self, chat_id: str, visibility: str) -> Dict[str, Any]:
        response = await self._client.patch(f"/chat/{chat_id}/visibility", json={"visibility": visibility})
        if response.status_code >= 400:
            raise _error_from(response)
        return response.json()
