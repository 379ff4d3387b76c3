from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel


ArtifactKind = Literal["text", "code", "image", "sheet"]
ARTIFACT_KINDS = ("text", "code", "image", "sheet")


class DocumentVersion(BaseModel):
    document_id: str
    title: str
    kind: ArtifactKind
    content: str
    created_at: datetime
    sequence: int


class Document(BaseModel):
    id: str
    owner_id: str
    kind: ArtifactKind
    versions: List[DocumentVersion]

    @property
    def current(self) -> DocumentVersion:
        return self.versions[-1]


class DocumentSaveRequest(BaseModel):
    # Missing fields are reported by the store as bad_request:document
    content: Optional[str] = None
    title: Optional[str] = None
    kind: Optional[str] = None


class RollbackResult(BaseModel):
    deleted_count: int
