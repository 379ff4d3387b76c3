from __future__ import annotations

from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Any, Callable, Optional


TICK = timedelta(microseconds=1)
MILLISECOND = timedelta(milliseconds=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return utc_now()


def isoformat_utc(value: Any) -> str:
    dt = ensure_utc(value)
    return dt.isoformat().replace("+00:00", "Z")


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 string or epoch milliseconds into an aware UTC datetime.

    Epoch milliseconds resolve to the last microsecond of that millisecond, so
    a cutoff taken from a version's own millisecond timestamp still includes it.

    Raises:
        ValueError if the value is neither.
    """
    text = (raw or "").strip()
    if not text:
        raise ValueError("empty timestamp")
    if text.lstrip("-").isdigit():
        start = datetime(1970, 1, 1, tzinfo=UTC) + timedelta(milliseconds=int(text))
        return start + MILLISECOND - TICK
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


class MonotonicClock:
    """UTC clock whose readings strictly increase, even if the source stalls or goes backwards."""

    def __init__(self, source: Optional[Callable[[], datetime]] = None) -> None:
        self._source = source or utc_now
        self._last: Optional[datetime] = None
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            current = ensure_utc(self._source())
            if self._last is not None and current <= self._last:
                current = self._last + TICK
            self._last = current
            return current
