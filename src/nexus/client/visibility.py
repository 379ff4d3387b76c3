from __future__ import annotations

"""Optimistic chat visibility updates.

The local value changes synchronously, then the server call either confirms
the update or the local value is reverted. Each attempt is an
``OptimisticUpdate`` moving ``pending -> confirmed | reverted``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .store import ScopedStore


logger = logging.getLogger(__name__)

Persist = Callable[[str, str], Awaitable[Any]]


class UpdateState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


@dataclass
class OptimisticUpdate:
    previous: str
    value: str
    state: UpdateState = UpdateState.PENDING
    error: Optional[BaseException] = None

    def confirm(self) -> None:
        if self.state != UpdateState.PENDING:
            raise RuntimeError(f"Cannot confirm an update that is {self.state.value}")
        self.state = UpdateState.CONFIRMED

    def revert(self, error: Optional[BaseException] = None) -> str:
        if self.state != UpdateState.PENDING:
            raise RuntimeError(f"Cannot revert an update that is {self.state.value}")
        self.state = UpdateState.REVERTED
        self.error = error
        return self.previous


def visibility_field(chat_id: str) -> str:
    return f"{chat_id}-visibility"


class VisibilityController:
    def __init__(self, chat_id: str, initial: str, persist: Persist, store: ScopedStore) -> None:
        self.chat_id = chat_id
        self._persist = persist
        self._store = store
        self._field = visibility_field(chat_id)
        store.claim(self._field, self)
        store.set(self._field, initial, self)

    @property
    def visibility(self) -> str:
        return self._store.get(self._field)

    async def set_visibility(self, visibility: str) -> OptimisticUpdate:
        update = OptimisticUpdate(previous=self.visibility, value=visibility)
        self._store.set(self._field, visibility, self)
        try:
            await self._persist(self.chat_id, visibility)
        except Exception as exc:
            logger.warning("Visibility update for chat %s failed; reverting: %s", self.chat_id, exc)
            self._store.set(self._field, update.revert(exc), self)
            return update
        update.confirm()
        return update
