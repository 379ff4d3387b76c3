import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _fresh_singletons(monkeypatch):
    """Give every test its own stores, channels and rate-limit counters, and no LLM key."""
    from src.nexus.infrastructure import chat_store, doc_store
    from src.nexus.security.rate_limit import reset_rate_limits
    from src.nexus.services import chat_service, stream_channel

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("NEXUS_RATE_LIMIT_DISABLED", raising=False)
    monkeypatch.setattr(chat_store, "_store", None)
    monkeypatch.setattr(doc_store, "_doc_store_singleton", None)
    monkeypatch.setattr(stream_channel, "_registry", None)
    monkeypatch.setattr(chat_service, "_service", None)
    reset_rate_limits()
    yield
    reset_rate_limits()
