"""Repositories for documents, contractor badges, and the audit trail."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import select

from docverify.domain.audit import AuditTrail
from docverify.domain.document import AIStatus, Document, DocumentStatus
from docverify.domain.user import Contractor
from docverify.repositories.base import BaseRepository


class DocumentRepository(BaseRepository[Document]):
    model = Document

    async def pending_unverified_ids(self) -> list[str]:
        """PENDING documents the verifier has not decided (or only flagged)."""
        result = await self._session.execute(
            select(Document.id)
            .where(Document.status == DocumentStatus.PENDING.value)
            .where(Document.ai_status.in_([AIStatus.NONE.value, AIStatus.NEEDS_REVIEW.value]))
            .order_by(Document.created_at.asc())
        )
        return list(result.scalars().all())

    async def expired_as_of(self, today: date) -> list[Document]:
        return await self.find(
            Document.effective_to < today,
            Document.status.in_([DocumentStatus.APPROVED.value, DocumentStatus.NEEDS_REVIEW.value]),
        )

    async def expiring_between(self, start: date, end: date) -> list[Document]:
        return await self.find(
            Document.effective_to > start,
            Document.effective_to <= end,
            Document.status == DocumentStatus.APPROVED.value,
        )


class ContractorRepository(BaseRepository[Contractor]):
    model = Contractor

    async def get_by_user_id(self, user_id: str) -> Contractor | None:
        result = await self._session.execute(
            select(Contractor).where(Contractor.user_id == user_id)
        )
        return result.scalars().first()


class AuditRepository(BaseRepository[AuditTrail]):
    model = AuditTrail

    async def record(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: str | None,
        new_value: Any = None,
        description: str | None = None,
        actor_user_id: str | None = None,
    ) -> AuditTrail:
        return await self.create(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            new_value=new_value,
            description=description,
            actor_user_id=actor_user_id,
        )
