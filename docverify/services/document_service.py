"""Document lifecycle operations layered on the verification pipeline."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from docverify.core.config import Settings, settings
from docverify.core.exceptions import NotFoundError
from docverify.domain.document import AIStatus, DocumentStatus
from docverify.schemas.verification import DocumentRecord
from docverify.services.document_store import DocumentStore
from docverify.services.notifications import Notifier
from docverify.services.orchestrator import VerificationOrchestrator

logger = logging.getLogger(__name__)

EXPIRED_NOTE = "Automatically marked expired by system check."


async def reverify_document_by_id(
    store: DocumentStore,
    orchestrator: VerificationOrchestrator,
    document_id: str,
) -> DocumentRecord:
    """Reset the decision fields and queue a forced re-verification."""
    document = await store.load_document(document_id)
    if document is None:
        raise NotFoundError("Document", document_id)

    requested_at = datetime.now(timezone.utc).isoformat()
    updated = await store.update_document(
        document_id,
        ai_status=AIStatus.NEEDS_REVIEW,
        status=DocumentStatus.NEEDS_REVIEW,
        ai_confidence=0,
        ai_reason=f"Reverification requested at {requested_at}",
    )
    orchestrator.reverify_document(document_id)
    return updated


async def expire_stale_documents(
    store: DocumentStore,
    notifier: Notifier,
    today: date | None = None,
    config: Settings = settings,
) -> int:
    """Expire lapsed documents, warn owners of soon-to-lapse ones.

    Returns the number of documents moved to EXPIRED.
    """
    today = today or date.today()

    expired = await store.find_expired(today)
    for document in expired:
        await store.update_document(
            document.id,
            status=DocumentStatus.EXPIRED,
            ai_status=AIStatus.REJECTED,
            ai_reason=f"Document expired on {document.effective_to.isoformat()}",
            ai_confidence=config.expired_confidence,
            notes=EXPIRED_NOTE,
        )
        await store.update_contractor_badge(document.user_id, document.type, False)
        notifier.document_expired(document)

    expiring = await store.find_expiring(today, today + timedelta(days=config.expiring_soon_days))
    for document in expiring:
        notifier.document_expiring_soon(document)

    logger.info(
        "Expiry sweep: %d document(s) expired, %d expiring within %d day(s)",
        len(expired), len(expiring), config.expiring_soon_days,
    )
    return len(expired)
