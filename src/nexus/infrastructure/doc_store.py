from __future__ import annotations

"""Append-only versioned document store.

A document is identified by its id; saving with a new id creates it, saving
with an existing id appends a version. The last version is always the current
one. ``rollback`` is the undo primitive: it drops every version created after
a cutoff.

Invariants:
- versions are strictly increasing in ``created_at`` and ``sequence``;
- a document never ends up with zero versions;
- the owner recorded on the document root is the only one ownership checks use.
"""

import itertools
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock, RLock
from typing import Callable, Dict, List, Optional, Protocol

from ..domain.docs_models import ARTIFACT_KINDS, Document, DocumentVersion
from ..errors import ChatError
from ..observability.metrics import DOCUMENT_VERSIONS_APPENDED
from ..security.ownership import Right, authorize
from .clock import MonotonicClock, ensure_utc


logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def save(
        self,
        document_id: str,
        owner_id: str,
        content: Optional[str],
        title: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> Document: ...

    def get_document(self, document_id: str) -> Optional[Document]: ...

    def list_versions(self, document_id: str, caller_id: Optional[str]) -> List[DocumentVersion]: ...

    def rollback(self, document_id: str, after: datetime, caller_id: Optional[str]) -> int: ...


@dataclass
class _DocumentRecord:
    document_id: str
    owner_id: str
    kind: str
    versions: List[DocumentVersion] = field(default_factory=list)
    lock: Lock = field(default_factory=Lock)


class InMemoryDocumentStore:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._docs: Dict[str, _DocumentRecord] = {}
        self._lock = RLock()
        self._clock = MonotonicClock(clock)
        self._sequence = itertools.count(1)

    def _to_model(self, record: _DocumentRecord) -> Document:
        return Document(
            id=record.document_id,
            owner_id=record.owner_id,
            kind=record.kind,  # type: ignore[arg-type]
            versions=list(record.versions),
        )

    def _new_version(self, record: _DocumentRecord, content: str, title: str) -> DocumentVersion:
        # Caller holds record.lock
        with self._lock:
            sequence = next(self._sequence)
        created_at = self._clock.now()
        version = DocumentVersion(
            document_id=record.document_id,
            title=title,
            kind=record.kind,  # type: ignore[arg-type]
            content=content,
            created_at=created_at,
            sequence=sequence,
        )
        record.versions.append(version)
        DOCUMENT_VERSIONS_APPENDED.inc()
        return version

    def save(
        self,
        document_id: str,
        owner_id: str,
        content: Optional[str],
        title: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> Document:
        if not document_id:
            raise ChatError("bad_request:document", "Parameter id is required.")
        if content is None:
            raise ChatError("bad_request:document", "Field content is required.")
        if kind is not None and kind not in ARTIFACT_KINDS:
            raise ChatError("bad_request:document", f"Unsupported document kind: {kind}")

        with self._lock:
            record = self._docs.get(document_id)
            if record is None:
                if not title or kind is None:
                    raise ChatError("bad_request:document", "Fields title and kind are required to create a document.")
                record = _DocumentRecord(document_id=document_id, owner_id=owner_id, kind=kind)
                with record.lock:
                    self._new_version(record, content, title)
                self._docs[document_id] = record
                logger.info("Created document %s for owner %s", document_id, owner_id)
                return self._to_model(record)

        authorize(record.owner_id, owner_id, Right.WRITE, surface="document")
        if kind is not None and kind != record.kind:
            raise ChatError("bad_request:document", f"Document kind is {record.kind}, not {kind}")
        with record.lock:
            self._new_version(record, content, title or record.versions[-1].title)
            return self._to_model(record)

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._lock:
            record = self._docs.get(document_id)
        if record is None:
            return None
        with record.lock:
            return self._to_model(record)

    def _authorized(self, document_id: str, caller_id: Optional[str], right: Right) -> _DocumentRecord:
        with self._lock:
            record = self._docs.get(document_id)
        authorize(record.owner_id if record else None, caller_id, right, surface="document")
        if record is None:
            raise ChatError("not_found:document")
        return record

    def list_versions(self, document_id: str, caller_id: Optional[str]) -> List[DocumentVersion]:
        record = self._authorized(document_id, caller_id, Right.READ)
        with record.lock:
            return list(record.versions)

    def rollback(self, document_id: str, after: datetime, caller_id: Optional[str]) -> int:
        """Delete every version created strictly after ``after``; return how many were removed.

        Raises:
            ChatError(bad_request:document) if ``after`` precedes the first
            version, so the document always keeps at least one version.
        """
        record = self._authorized(document_id, caller_id, Right.WRITE)
        cutoff = ensure_utc(after)
        with record.lock:
            if cutoff < record.versions[0].created_at:
                raise ChatError(
                    "bad_request:document",
                    "Timestamp precedes the first version of this document.",
                )
            kept = [v for v in record.versions if v.created_at <= cutoff]
            removed = len(record.versions) - len(kept)
            record.versions = kept
        if removed:
            logger.info("Rolled back document %s: removed %d version(s)", document_id, removed)
        return removed


_doc_store_singleton: DocumentStore | None = None


def get_doc_store() -> DocumentStore:
    global _doc_store_singleton
    if _doc_store_singleton is not None:
        return _doc_store_singleton
    impl = os.getenv("NEXUS_DOC_STORE_IMPL", "memory").lower()
    if impl != "memory":
        logger.warning("Unknown NEXUS_DOC_STORE_IMPL=%s; using in-memory store", impl)
    _doc_store_singleton = InMemoryDocumentStore()
    return _doc_store_singleton
