"""Document verification router.

Pattern:
  1. Resolve the shared store / orchestrator from ``app.state``
  2. Delegate to the orchestrator or a lifecycle service
  3. Wrap the result in the ``{ data: ... }`` envelope
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from docverify.core.exceptions import NotFoundError
from docverify.schemas.common import DataResponse
from docverify.schemas.verification import (
    DocumentVerificationOut,
    ExpirySweepOut,
    VerificationQueuedOut,
)
from docverify.services.document_service import expire_stale_documents, reverify_document_by_id
from docverify.services.document_store import DocumentStore
from docverify.services.orchestrator import VerificationOrchestrator

router = APIRouter(prefix="/documents", tags=["Documents"])


# ------------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------------

def get_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_orchestrator(request: Request) -> VerificationOrchestrator:
    return request.app.state.orchestrator


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/{document_id}/verification", response_model=DataResponse[DocumentVerificationOut])
async def get_verification(
    document_id: str,
    store: DocumentStore = Depends(get_store),
):
    """Current verification state of a document."""
    document = await store.load_document(document_id)
    if document is None:
        raise NotFoundError("Document", document_id)
    return {"data": DocumentVerificationOut.model_validate(document.model_dump())}


@router.post(
    "/{document_id}/verify",
    response_model=DataResponse[VerificationQueuedOut],
    status_code=status.HTTP_202_ACCEPTED,
)
async def verify_document(
    document_id: str,
    store: DocumentStore = Depends(get_store),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
):
    """Queue a verification; a document already in flight is not queued twice."""
    if await store.load_document(document_id) is None:
        raise NotFoundError("Document", document_id)
    queued = orchestrator.enqueue_verification(document_id)
    return {"data": VerificationQueuedOut(document_id=document_id, queued=queued)}


@router.post(
    "/{document_id}/reverify",
    response_model=DataResponse[VerificationQueuedOut],
    status_code=status.HTTP_202_ACCEPTED,
)
async def reverify_document(
    document_id: str,
    store: DocumentStore = Depends(get_store),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
):
    await reverify_document_by_id(store, orchestrator, document_id)
    return {"data": VerificationQueuedOut(document_id=document_id, queued=True)}


@router.post("/expire-stale", response_model=DataResponse[ExpirySweepOut])
async def expire_stale(
    store: DocumentStore = Depends(get_store),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
):
    """Expire lapsed documents and warn owners about upcoming expiries."""
    expired = await expire_stale_documents(store, orchestrator.notifier)
    return {"data": ExpirySweepOut(expired=expired)}
