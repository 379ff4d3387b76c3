from __future__ import annotations

"""In-process fan-out of stream parts for one generation session.

A channel has a single producer and any number of subscriptions. Parts reach
every subscription attached at publish time, in publish order; late
subscribers see only later parts. Closing a channel ends every subscription
and removes it from its registry.
"""

import asyncio
import logging
import uuid
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from ..domain.chat_models import StreamPart
from ..observability.metrics import STREAM_PARTS_PUBLISHED
from ..infrastructure.clock import utc_now


logger = logging.getLogger(__name__)

_CLOSED = object()


class ChannelClosedError(RuntimeError):
    pass


class Subscription:
    """Async iterator over the parts a channel publishes after attachment."""

    def __init__(self, channel: "StreamPartChannel", closed: bool = False) -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._detached = False
        self.closed = closed
        if closed:
            self._queue.put_nowait(_CLOSED)

    @property
    def chat_id(self) -> str:
        return self._channel.chat_id

    @property
    def generation_id(self) -> str:
        return self._channel.generation_id

    def _deliver(self, part: StreamPart) -> None:
        self._queue.put_nowait(part)

    def _terminate(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> StreamPart:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        return item

    def detach(self) -> None:
        if self._detached:
            return
        self._detached = True
        self._channel._remove(self)
        self._terminate()


class StreamPartChannel:
    def __init__(
        self,
        chat_id: str,
        generation_id: Optional[str] = None,
        on_close: Optional[Callable[["StreamPartChannel"], None]] = None,
    ) -> None:
        self.chat_id = chat_id
        self.generation_id = generation_id or uuid.uuid4().hex
        self.created_at = utc_now()
        self._subscribers: List[Subscription] = []
        self._closed = False
        self._on_close = on_close

    @property
    def key(self) -> Tuple[str, str]:
        return (self.chat_id, self.generation_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def attach(self) -> Subscription:
        if self._closed:
            return Subscription(self, closed=True)
        sub = Subscription(self)
        self._subscribers.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def publish(self, part: StreamPart) -> None:
        if self._closed:
            raise ChannelClosedError(f"Channel {self.generation_id} for chat {self.chat_id} is closed")
        for sub in list(self._subscribers):
            sub._deliver(part)
        STREAM_PARTS_PUBLISHED.labels(type=part.type).inc()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sub in self._subscribers:
            sub._terminate()
        self._subscribers.clear()
        if self._on_close is not None:
            self._on_close(self)


class ChannelRegistry:
    """Open channels keyed by (chat id, generation id)."""

    def __init__(self) -> None:
        self._channels: Dict[Tuple[str, str], StreamPartChannel] = {}
        self._lock = Lock()

    def open(self, chat_id: str) -> StreamPartChannel:
        channel = StreamPartChannel(chat_id, on_close=self._discard)
        with self._lock:
            self._channels[channel.key] = channel
        logger.debug("Opened stream %s for chat %s", channel.generation_id, chat_id)
        return channel

    def get(self, chat_id: str, generation_id: str) -> Optional[StreamPartChannel]:
        with self._lock:
            return self._channels.get((chat_id, generation_id))

    def latest(self, chat_id: str) -> Optional[StreamPartChannel]:
        with self._lock:
            found = None
            for (cid, _gid), channel in self._channels.items():
                if cid == chat_id:
                    found = channel
            return found

    def _discard(self, channel: StreamPartChannel) -> None:
        with self._lock:
            self._channels.pop(channel.key, None)
        logger.debug("Closed stream %s for chat %s", channel.generation_id, channel.chat_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)


_registry: ChannelRegistry | None = None


def get_channel_registry() -> ChannelRegistry:
    global _registry
    if _registry is None:
        _registry = ChannelRegistry()
    return _registry
