from __future__ import annotations

"""Simple in-memory rate limiting primitives."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Dict, Tuple

from ..config import env_flag, env_int


@dataclass
class _RateLimitEntry:
    count: int
    window_end: datetime


_LIMIT_STORE: Dict[Tuple[str, str], _RateLimitEntry] = {}
_LOCK = Lock()


class RateLimitExceeded(Exception):
    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__("Rate limit exceeded")
        self.retry_after_seconds = retry_after_seconds


def rate_limit_action(
    key: str,
    identifier: str,
    *,
    limit_env: str,
    window_env: str,
    default_limit: int,
    default_window_seconds: int,
) -> None:
    """Track a rate-limited action.

    Raises:
        RateLimitExceeded if the action should be blocked. retry_after_seconds
        indicates when the caller may retry.
    """

    if _rate_limiting_disabled():
        return

    limit = env_int(limit_env, default_limit)
    window_seconds = env_int(window_env, default_window_seconds)

    now = datetime.now(timezone.utc)
    store_key = (key, identifier)
    with _LOCK:
        entry = _LIMIT_STORE.get(store_key)
        if entry and entry.window_end > now:
            if entry.count >= limit:
                retry_after = int((entry.window_end - now).total_seconds())
                raise RateLimitExceeded(max(retry_after, 1))
            entry.count += 1
            return
        _LIMIT_STORE[store_key] = _RateLimitEntry(count=1, window_end=now + timedelta(seconds=window_seconds))


def _rate_limiting_disabled() -> bool:
    return env_flag("NEXUS_RATE_LIMIT_DISABLED")


def reset_rate_limits() -> None:
    """Clear in-memory counters (useful for tests)."""

    with _LOCK:
        _LIMIT_STORE.clear()
