from __future__ import annotations

"""Producers of assistant text for a generation.

The model itself is opaque to the rest of the service: a producer takes the
conversation so far and yields text deltas. ``get_producer`` returns a
LangChain/OpenAI-backed producer when a key is configured and a deterministic
fallback otherwise. Provider failures are surfaced as ``ProducerUnavailable``
and never retried here.
"""

import asyncio
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from ..config import Settings

# Optional import: langchain-openai
try:
    from langchain_openai import ChatOpenAI  # type: ignore
    import openai  # type: ignore
except Exception:  # pragma: no cover - optional import
    ChatOpenAI = None  # type: ignore
    openai = None  # type: ignore


logger = logging.getLogger(__name__)
LOG = logging.getLogger("nexus.llm")

SYSTEM_PROMPT = (
    "You are a friendly assistant! Keep your responses concise and helpful. "
    "When asked to write or edit a document, produce the complete document."
)

# Client-facing model ids that map to NEXUS_LLM_MODEL; other ids pass through
MODEL_ALIASES = frozenset({"chat-model", "chat-model-reasoning"})


class ProducerUnavailable(Exception):
    def __init__(self, kind: str, detail: str = "") -> None:
        super().__init__(detail or kind)
        if kind not in ("rate_limited", "offline"):
            raise ValueError(f"Unsupported producer failure kind: {kind}")
        self.kind = kind


class Producer(Protocol):
    def stream(self, history: List[Dict[str, str]], model: str) -> AsyncIterator[str]: ...


def text_of(parts: List[Any]) -> str:
    chunks: List[str] = []
    for part in parts or []:
        if isinstance(part, dict) and part.get("type") == "text":
            chunks.append(str(part.get("text") or ""))
    return "\n".join(c for c in chunks if c)


def resolve_model(selected: Optional[str], settings: Optional[Settings] = None) -> str:
    settings = settings or Settings.from_env()
    if not selected or selected in MODEL_ALIASES:
        return settings.llm_model
    return selected


class FallbackProducer:
    """Deterministic producer used when no language model is configured."""

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    def _reply(self, history: List[Dict[str, str]]) -> str:
        last_user = next((m.get("content", "") for m in reversed(history) if m.get("role") == "user"), "")
        text = (last_user or "").strip()
        lines = ["I'm running without a language model right now, so here's a quick recap."]
        if text:
            lines.append(f"You said: {text.splitlines()[0][:180]}")
        lines.append("Configure OPENAI_API_KEY to get full answers.")
        return "\n".join(lines)

    async def stream(self, history: List[Dict[str, str]], model: str) -> AsyncIterator[str]:
        words = self._reply(history).split(" ")
        for idx, word in enumerate(words):
            if self._delay:
                await asyncio.sleep(self._delay)
            yield word if idx == len(words) - 1 else word + " "


class LangChainProducer:
    def __init__(self, api_key: str, base_url: Optional[str] = None) -> None:
        self._api_key = api_key
        self._base_url = base_url

    def _client(self, model: str) -> Any:
        if ChatOpenAI is None:
            raise ProducerUnavailable("offline", "LLM client not available")
        return ChatOpenAI(api_key=self._api_key, base_url=self._base_url, model=model, temperature=0.2)

    async def stream(self, history: List[Dict[str, str]], model: str) -> AsyncIterator[str]:
        msgs = [{"role": "system", "content": SYSTEM_PROMPT}]
        for m in history:
            role = m.get("role") or "user"
            if role not in ("system", "user", "assistant"):
                role = "user"
            msgs.append({"role": role, "content": m.get("content") or ""})
        LOG.info("Streaming reply model=%s messages=%d", model, len(msgs))
        try:
            async for chunk in self._client(model).astream(msgs):
                content = getattr(chunk, "content", "")
                if content:
                    yield str(content)
        except ProducerUnavailable:
            raise
        except Exception as exc:
            if openai is not None and isinstance(exc, openai.RateLimitError):
                LOG.warning("LLM rate limited: %s", exc)
                raise ProducerUnavailable("rate_limited", str(exc)) from exc
            if openai is not None and isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
                LOG.warning("LLM unreachable: %s", exc)
                raise ProducerUnavailable("offline", str(exc)) from exc
            raise


def get_producer() -> Producer:
    api_key = os.getenv("OPENAI_API_KEY")
    if ChatOpenAI is not None and api_key:
        return LangChainProducer(api_key=api_key, base_url=os.getenv("OPENAI_BASE_URL"))
    logger.info("No LLM configured; using fallback producer")
    return FallbackProducer()
