"""Persistence collaborator for the verification pipeline.

:class:`DocumentStore` is the interface the orchestrator depends on;
:class:`SqlDocumentStore` implements it on the async SQLAlchemy session
factory.  Every method opens its own session and commits once.  A verification
decision (document fields plus badge and audit row) is written by
:meth:`SqlDocumentStore.persist_decision` in one transaction, so a failed
attempt never leaves a partial write behind.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docverify.core.exceptions import NotFoundError
from docverify.domain.document import Document, DocumentType
from docverify.domain.user import User
from docverify.repositories.document import (
    AuditRepository,
    ContractorRepository,
    DocumentRepository,
)
from docverify.schemas.verification import DocumentRecord

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    async def load_document(self, document_id: str) -> DocumentRecord | None: ...

    async def update_document(self, document_id: str, **fields: Any) -> DocumentRecord: ...

    async def persist_decision(
        self, document: DocumentRecord, *, fields: dict[str, Any], verified: bool,
        action: str, new_value: dict[str, Any] | None = None, description: str | None = None,
    ) -> None: ...

    async def find_pending_unverified(self) -> list[str]: ...

    async def update_contractor_badge(
        self, user_id: str, document_type: DocumentType, verified: bool,
    ) -> None: ...

    async def record_audit(
        self, *, action: str, entity_id: str, new_value: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> None: ...

    async def find_expired(self, today: date) -> list[DocumentRecord]: ...

    async def find_expiring(self, today: date, until: date) -> list[DocumentRecord]: ...


def badge_field(document_type: DocumentType) -> str | None:
    """Contractor badge column driven by a document type (None: no badge)."""
    if document_type == DocumentType.INSURANCE:
        return "verified_insurance"
    if document_type in (DocumentType.LICENSE, DocumentType.CERT):
        return "verified_license"
    return None


def to_record(document: Document) -> DocumentRecord:
    record = DocumentRecord.model_validate(document)
    owner = document.__dict__.get("user")  # loaded eagerly; never trigger IO here
    return record.model_copy(update={
        "ai_confidence": float(document.ai_confidence) if document.ai_confidence is not None else None,
        "owner_email": owner.email if owner is not None else None,
    })


def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
    values = dict(fields)
    for key in ("status", "ai_status", "type"):
        if hasattr(values.get(key), "value"):
            values[key] = values[key].value
    if values.get("ai_confidence") is not None:
        values["ai_confidence"] = Decimal(f"{float(values['ai_confidence']):.4f}")
    return values


class SqlDocumentStore:
    """SQLAlchemy-backed :class:`DocumentStore`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._ai_actor_id: str | None = None

    async def load_document(self, document_id: str) -> DocumentRecord | None:
        async with self._session_factory() as session:
            document = await DocumentRepository(session).get_by_id(document_id)
            return to_record(document) if document else None

    async def update_document(self, document_id: str, **fields: Any) -> DocumentRecord:
        async with self._session_factory() as session:
            async with session.begin():
                repo = DocumentRepository(session)
                touched = await repo.update(document_id, **_column_values(fields))
                if not touched:
                    raise NotFoundError("Document", document_id)
            document = await repo.get_by_id(document_id)
            return to_record(document)

    async def find_pending_unverified(self) -> list[str]:
        async with self._session_factory() as session:
            return await DocumentRepository(session).pending_unverified_ids()

    async def persist_decision(
        self, document: DocumentRecord, *, fields: dict[str, Any], verified: bool,
        action: str, new_value: dict[str, Any] | None = None, description: str | None = None,
    ) -> None:
        """Write decision fields, badge and audit row in a single transaction."""
        async with self._session_factory() as session:
            async with session.begin():
                touched = await DocumentRepository(session).update(
                    document.id, **_column_values(fields),
                )
                if not touched:
                    raise NotFoundError("Document", document.id)
                await self._set_badge(session, document.user_id, document.type, verified)
                await self._write_audit(
                    session, action=action, entity_id=document.id,
                    new_value=new_value, description=description,
                )

    async def update_contractor_badge(
        self, user_id: str, document_type: DocumentType, verified: bool,
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await self._set_badge(session, user_id, document_type, verified)

    async def record_audit(
        self, *, action: str, entity_id: str, new_value: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await self._write_audit(
                    session, action=action, entity_id=entity_id,
                    new_value=new_value, description=description,
                )

    async def find_expired(self, today: date) -> list[DocumentRecord]:
        async with self._session_factory() as session:
            return [to_record(d) for d in await DocumentRepository(session).expired_as_of(today)]

    async def find_expiring(self, today: date, until: date) -> list[DocumentRecord]:
        async with self._session_factory() as session:
            docs = await DocumentRepository(session).expiring_between(today, until)
            return [to_record(d) for d in docs]

    async def _resolve_ai_actor(self, session: AsyncSession) -> str | None:
        """Automated audit rows are attributed to the oldest admin, when one exists."""
        if self._ai_actor_id:
            return self._ai_actor_id
        result = await session.execute(
            select(User.id).where(User.role == "ADMIN").order_by(User.created_at.asc()).limit(1)
        )
        self._ai_actor_id = result.scalars().first()
        return self._ai_actor_id

    async def _set_badge(
        self, session: AsyncSession, user_id: str, document_type: DocumentType, verified: bool,
    ) -> None:
        field = badge_field(document_type)
        if field is None:
            return
        repo = ContractorRepository(session)
        contractor = await repo.get_by_user_id(user_id)
        if contractor is None:
            return
        await repo.update(contractor.id, **{field: verified})
        logger.info("Contractor badge %s=%s for user %s", field, verified, user_id)

    async def _write_audit(
        self, session: AsyncSession, *, action: str, entity_id: str,
        new_value: dict[str, Any] | None, description: str | None,
    ) -> None:
        actor_id = await self._resolve_ai_actor(session)
        await AuditRepository(session).record(
            action=action,
            entity_type="Document",
            entity_id=entity_id,
            new_value=new_value,
            description=description,
            actor_user_id=actor_id,
        )
