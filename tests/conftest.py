"""
Pytest configuration and shared fixtures for testing.

The collaborators of the verification pipeline (store, notification channel,
fetch, text extraction) are replaced with small in-memory fakes here.
"""

from datetime import date
from typing import Any

import pytest

from docverify.core.exceptions import NotFoundError
from docverify.domain.document import AIStatus, DocumentStatus, DocumentType
from docverify.schemas.verification import DocumentRecord
from docverify.services.fetcher import DownloadedFile

TODAY = date(2024, 6, 1)


@pytest.fixture
def sample_coi_text():
    """Text layer of a typical certificate of insurance"""
    return (
        "CERTIFICATE OF LIABILITY INSURANCE\n"
        "Insurer: Lone Star General Insurance Co.\n"
        "Policy Number: GL-123456789\n"
        "Effective Date: 04/01/2024\n"
        "Expiration Date: 04/01/2025\n"
        "Coverage: General Liability, Workers Compensation\n"
        "Limits: $1,000,000 each occurrence\n"
    )


@pytest.fixture
def expired_coi_text():
    return (
        "Carrier: Gulf Coast Casualty Company\n"
        "Policy No. WC-55512\n"
        "Effective Date: 01/01/2023\n"
        "Expiration Date: 12/31/2023\n"
        "Workers Compensation and Employers Liability\n"
    )


def make_record(document_id: str = "doc-1", **overrides: Any) -> DocumentRecord:
    values: dict[str, Any] = {
        "id": document_id,
        "user_id": "user-1",
        "type": DocumentType.INSURANCE,
        "url": f"https://cdn.example.com/{document_id}.pdf",
        "status": DocumentStatus.PENDING,
        "ai_status": AIStatus.NONE,
        "owner_email": "pro@example.com",
    }
    values.update(overrides)
    return DocumentRecord(**values)


class InMemoryDocumentStore:
    """Dict-backed document store recording every write."""

    def __init__(self, *records: DocumentRecord):
        self.records: dict[str, DocumentRecord] = {r.id: r for r in records}
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.badges: list[tuple[str, DocumentType, bool]] = []
        self.audits: list[dict[str, Any]] = []
        self.fail_updates = False
        self.fail_audits = False
        self.fail_sweep = False

    async def load_document(self, document_id):
        return self.records.get(document_id)

    async def update_document(self, document_id, **fields):
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        if document_id not in self.records:
            raise NotFoundError("Document", document_id)
        self.updates.append((document_id, fields))
        updated = self.records[document_id].model_copy(update=fields)
        self.records[document_id] = updated
        return updated

    async def persist_decision(
        self, document, *, fields, verified, action, new_value=None, description=None,
    ):
        # All-or-nothing, like the single SQL transaction.
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        if self.fail_audits:
            raise RuntimeError("audit table locked")
        await self.update_document(document.id, **fields)
        await self.update_contractor_badge(document.user_id, document.type, verified)
        await self.record_audit(
            action=action, entity_id=document.id, new_value=new_value, description=description,
        )

    async def find_pending_unverified(self):
        if self.fail_sweep:
            raise RuntimeError("database unavailable")
        return [
            r.id for r in self.records.values()
            if r.status == DocumentStatus.PENDING
            and r.ai_status in (AIStatus.NONE, AIStatus.NEEDS_REVIEW)
        ]

    async def update_contractor_badge(self, user_id, document_type, verified):
        self.badges.append((user_id, document_type, verified))

    async def record_audit(self, *, action, entity_id, new_value=None, description=None):
        if self.fail_audits:
            raise RuntimeError("audit table locked")
        self.audits.append({
            "action": action,
            "entity_id": entity_id,
            "new_value": new_value,
            "description": description,
        })

    async def find_expired(self, today):
        return [
            r for r in self.records.values()
            if r.effective_to and r.effective_to < today
            and r.status in (DocumentStatus.APPROVED, DocumentStatus.NEEDS_REVIEW)
        ]

    async def find_expiring(self, today, until):
        return [
            r for r in self.records.values()
            if r.effective_to and today < r.effective_to <= until
            and r.status == DocumentStatus.APPROVED
        ]


class RecordingChannel:
    def __init__(self):
        self.emails: list[tuple[str, str]] = []
        self.in_app: list[tuple[str, str, dict]] = []

    async def send_email(self, to, subject, text, html):
        self.emails.append((to, subject))

    async def create_in_app_notification(self, user_id, type, payload):
        self.in_app.append((user_id, type, payload))


class BrokenChannel:
    async def send_email(self, to, subject, text, html):
        raise RuntimeError("smtp down")

    async def create_in_app_notification(self, user_id, type, payload):
        raise RuntimeError("notification service down")


def static_fetch(content: bytes = b"%PDF-1.7", content_type: str = "application/pdf"):
    calls: list[str] = []

    async def fetch(url: str) -> DownloadedFile:
        calls.append(url)
        return DownloadedFile(content=content, content_type=content_type, source_url=url)

    fetch.calls = calls
    return fetch


def static_text(*pages: str):
    async def extract(file: DownloadedFile) -> list[str]:
        return list(pages)

    return extract


@pytest.fixture
def store():
    return InMemoryDocumentStore(make_record())


@pytest.fixture
def channel():
    return RecordingChannel()
