from __future__ import annotations

"""Explicitly scoped client state.

A ``ScopedStore`` is created by whoever owns a conversation view and handed to
the components that need it. Each field has at most one writer; any number of
readers subscribe to change notifications, either on the raw value or on a
derived selection.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional


Listener = Callable[[Any], None]
_UNSET = object()


class WriterConflict(RuntimeError):
    pass


class ScopedStore:
    def __init__(self, **initial: Any) -> None:
        self._values: Dict[str, Any] = dict(initial)
        self._writers: Dict[str, object] = {}
        self._listeners: Dict[str, List[Listener]] = {}

    def get(self, field: str, default: Any = None) -> Any:
        return self._values.get(field, default)

    def claim(self, field: str, writer: object) -> None:
        owner = self._writers.get(field)
        if owner is not None and owner is not writer:
            raise WriterConflict(f"Field {field!r} already has a writer")
        self._writers[field] = writer

    def release(self, field: str, writer: object) -> None:
        if self._writers.get(field) is writer:
            del self._writers[field]

    def set(self, field: str, value: Any, writer: object) -> None:
        owner = self._writers.get(field)
        if owner is None:
            self.claim(field, writer)
        elif owner is not writer:
            raise WriterConflict(f"Field {field!r} is written by another component")
        if self._values.get(field, _UNSET) == value:
            return
        self._values[field] = value
        for listener in list(self._listeners.get(field, [])):
            listener(value)

    def update(self, field: str, fn: Callable[[Any], Any], writer: object, default: Any = None) -> Any:
        value = fn(self._values.get(field, default))
        self.set(field, value, writer)
        return value

    def subscribe(self, field: str, listener: Listener) -> Callable[[], None]:
        listeners = self._listeners.setdefault(field, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def select(self, field: str, selector: Callable[[Any], Any], listener: Listener) -> Callable[[], None]:
        """Subscribe to ``selector(value)``; the listener fires only when the selection changes."""
        last = {"value": selector(self._values.get(field))}

        def on_change(value: Any) -> None:
            selected = selector(value)
            if selected != last["value"]:
                last["value"] = selected
                listener(selected)

        return self.subscribe(field, on_change)


@dataclass(frozen=True)
class ArtifactState:
    document_id: str = "init"
    content: str = ""
    kind: str = "text"
    title: str = ""
    status: str = "idle"
    is_visible: bool = False


ARTIFACT_FIELD = "artifact"


class ArtifactController:
    """Single writer of the ``artifact`` field of a scoped store."""

    def __init__(self, store: ScopedStore, initial: Optional[ArtifactState] = None) -> None:
        self._store = store
        store.claim(ARTIFACT_FIELD, self)
        if store.get(ARTIFACT_FIELD) is None:
            store.set(ARTIFACT_FIELD, initial or ArtifactState(), self)

    @property
    def artifact(self) -> ArtifactState:
        return self._store.get(ARTIFACT_FIELD) or ArtifactState()

    def set_artifact(self, value: ArtifactState | Callable[[ArtifactState], ArtifactState]) -> ArtifactState:
        current = self.artifact
        updated = value(current) if callable(value) else value
        self._store.set(ARTIFACT_FIELD, updated, self)
        return updated

    def patch(self, **changes: Any) -> ArtifactState:
        return self.set_artifact(lambda current: replace(current, **changes))
