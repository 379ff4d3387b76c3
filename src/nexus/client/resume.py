from __future__ import annotations

"""Client-side stream resumption.

One ``ResumeCoordinator`` lives for one mounted conversation view. On
``start`` it decides, exactly once, whether to re-attach to the server-side
stream for its chat: only when auto-resume is on and the last known message
is the user's (the assistant has not replied yet). While attached it records
every part in the scoped store and, on ``data-appendMessage``, replaces the
message list with the initial messages plus the embedded message.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from ..domain.chat_models import Message, StreamPart
from .store import ScopedStore


logger = logging.getLogger(__name__)

MESSAGES_FIELD = "messages"
DATA_STREAM_FIELD = "data_stream"

ResumeStream = Callable[[str], Awaitable[Optional[AsyncIterator[StreamPart]]]]


class ResumeState(str, Enum):
    IDLE = "idle"
    RESUMING = "resuming"
    ATTACHED = "attached"
    DONE = "done"


TRANSITIONS: Dict[ResumeState, Set[ResumeState]] = {
    ResumeState.IDLE: {ResumeState.RESUMING, ResumeState.DONE},
    ResumeState.RESUMING: {ResumeState.ATTACHED, ResumeState.DONE},
    ResumeState.ATTACHED: {ResumeState.DONE},
    ResumeState.DONE: set(),
}


class InvalidTransition(RuntimeError):
    pass


def is_valid_transition(current: ResumeState, target: ResumeState) -> bool:
    return target in TRANSITIONS.get(current, set())


def parse_message(data: Any) -> Message:
    if isinstance(data, str):
        return Message.model_validate_json(data)
    return Message.model_validate(data)


class ResumeCoordinator:
    def __init__(
        self,
        chat_id: str,
        initial_messages: List[Message],
        resume_stream: ResumeStream,
        store: ScopedStore,
        *,
        auto_resume: bool = True,
    ) -> None:
        self.chat_id = chat_id
        self._initial = list(initial_messages)
        self._resume_stream = resume_stream
        self._store = store
        self._auto_resume = auto_resume
        self._state = ResumeState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._stream: Optional[AsyncIterator[StreamPart]] = None
        self._history: List[ResumeState] = [ResumeState.IDLE]
        store.claim(MESSAGES_FIELD, self)
        store.claim(DATA_STREAM_FIELD, self)
        store.set(MESSAGES_FIELD, list(self._initial), self)
        store.set(DATA_STREAM_FIELD, [], self)

    @property
    def state(self) -> ResumeState:
        return self._state

    @property
    def transitions(self) -> List[ResumeState]:
        return list(self._history)

    @property
    def messages(self) -> List[Message]:
        return list(self._store.get(MESSAGES_FIELD, []))

    def _transition(self, target: ResumeState) -> None:
        if not is_valid_transition(self._state, target):
            raise InvalidTransition(f"{self._state.value} -> {target.value}")
        self._state = target
        self._history.append(target)

    def should_resume(self) -> bool:
        if not self._auto_resume or not self._initial:
            return False
        return self._initial[-1].role == "user"

    def start(self) -> asyncio.Task:
        """Schedule the single resume attempt for this mount; later calls return the same task."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        if self._state == ResumeState.DONE:
            return
        if not self.should_resume():
            self._transition(ResumeState.DONE)
            return
        self._transition(ResumeState.RESUMING)
        try:
            stream = await self._resume_stream(self.chat_id)
            if stream is None:
                return
            self._stream = stream
            self._transition(ResumeState.ATTACHED)
            async for part in stream:
                self._on_part(part)
        finally:
            self._detach()
            if self._state != ResumeState.DONE:
                self._transition(ResumeState.DONE)

    def _on_part(self, part: StreamPart) -> None:
        self._store.update(DATA_STREAM_FIELD, lambda parts: [*(parts or []), part], self)
        if part.type == "data-appendMessage":
            try:
                message = parse_message(part.data)
            except ValueError:
                logger.exception("Skipping malformed appended message for chat %s", self.chat_id)
                return
            self._store.set(MESSAGES_FIELD, [*self._initial, message], self)

    def _detach(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        detach = getattr(stream, "detach", None)
        if callable(detach):
            detach()

    async def stop(self) -> None:
        """Tear down on unmount; safe to call any number of times."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Resume for chat %s cancelled", self.chat_id)
        self._detach()
        if self._state != ResumeState.DONE:
            self._transition(ResumeState.DONE)
        self._store.release(MESSAGES_FIELD, self)
        self._store.release(DATA_STREAM_FIELD, self)
