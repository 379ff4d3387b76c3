from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from ...domain.docs_models import Document, DocumentSaveRequest, DocumentVersion, RollbackResult
from ...errors import ChatError
from ...infrastructure.clock import parse_timestamp
from ...infrastructure.doc_store import get_doc_store
from ...security.auth import User, get_optional_user


router = APIRouter(prefix="/document", tags=["document"])


@router.get("", response_model=List[DocumentVersion])
def list_document_versions(
    id: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
) -> List[DocumentVersion]:
    if not id:
        raise ChatError("bad_request:api", "Parameter id is missing")
    if user is None:
        raise ChatError("unauthorized:document")
    return get_doc_store().list_versions(id, user.id)


@router.post("", response_model=Document)
def save_document(
    body: DocumentSaveRequest,
    id: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
) -> Document:
    if not id:
        raise ChatError("bad_request:api", "Parameter id is required.")
    # Anonymous writers get not_found so document ids are not confirmed to them
    if user is None:
        raise ChatError("not_found:document")
    return get_doc_store().save(id, user.id, body.content, title=body.title, kind=body.kind)


@router.delete("", response_model=RollbackResult)
def delete_document_versions(
    id: Optional[str] = Query(None),
    timestamp: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
) -> RollbackResult:
    if not id:
        raise ChatError("bad_request:api", "Parameter id is required.")
    if not timestamp:
        raise ChatError("bad_request:api", "Parameter timestamp is required.")
    if user is None:
        raise ChatError("unauthorized:document")
    try:
        after = parse_timestamp(timestamp)
    except ValueError as exc:
        raise ChatError("bad_request:api", "Parameter timestamp is not a valid date.") from exc
    deleted = get_doc_store().rollback(id, after, user.id)
    return RollbackResult(deleted_count=deleted)
