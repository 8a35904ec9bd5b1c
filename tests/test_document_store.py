"""SqlDocumentStore against an in-memory SQLite database."""

from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import select

from docverify.core.exceptions import NotFoundError
from docverify.db.base import build_engine, build_session_factory, init_models
from docverify.domain import AuditTrail, Contractor, Document, User
from docverify.domain.document import AIStatus, DocumentStatus, DocumentType
from docverify.repositories.document import AuditRepository
from docverify.services.document_store import SqlDocumentStore, badge_field


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine("sqlite+aiosqlite://")
    await init_models(engine)
    factory = build_session_factory(engine)

    async with factory() as session:
        session.add_all([
            User(id="admin-1", email="ops@example.com", role="ADMIN"),
            User(id="user-1", email="pro@example.com", role="CONTRACTOR"),
            Contractor(id="contractor-1", user_id="user-1"),
            Document(
                id="doc-1", user_id="user-1", type="INSURANCE",
                url="https://cdn.example.com/coi.pdf",
            ),
            Document(
                id="doc-2", user_id="user-1", type="LICENSE",
                url="https://cdn.example.com/license.png",
                status="APPROVED", ai_status="APPROVED", effective_to=date(2024, 5, 1),
            ),
            Document(
                id="doc-3", user_id="user-1", type="CERT",
                url="https://cdn.example.com/cert.pdf",
                status="APPROVED", ai_status="APPROVED", effective_to=date(2024, 6, 4),
            ),
        ])
        await session.commit()

    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(session_factory):
    return SqlDocumentStore(session_factory)


async def _contractor(factory):
    async with factory() as session:
        result = await session.execute(select(Contractor).where(Contractor.user_id == "user-1"))
        return result.scalars().one()


@pytest.mark.asyncio
async def test_load_document_includes_owner_email(sql_store):
    record = await sql_store.load_document("doc-1")

    assert record.type == DocumentType.INSURANCE
    assert record.status == DocumentStatus.PENDING
    assert record.ai_status == AIStatus.NONE
    assert record.owner_email == "pro@example.com"
    assert await sql_store.load_document("missing") is None


@pytest.mark.asyncio
async def test_decision_update_is_persisted(sql_store):
    updated = await sql_store.update_document(
        "doc-1",
        status=DocumentStatus.APPROVED,
        ai_status=AIStatus.APPROVED,
        ai_confidence=0.98,
        ai_reason="Policy number detected. Auto-approved with confidence score 0.98.",
        issuer="Lone Star General Insurance Co.",
        policy_number="GL-123456789",
        effective_from=date(2024, 4, 1),
        effective_to=date(2025, 4, 1),
    )

    assert updated.status == DocumentStatus.APPROVED
    assert updated.ai_confidence == pytest.approx(0.98)

    reloaded = await sql_store.load_document("doc-1")
    assert reloaded.policy_number == "GL-123456789"
    assert reloaded.effective_to == date(2025, 4, 1)
    assert isinstance(reloaded.ai_confidence, float)


@pytest.mark.asyncio
async def test_update_missing_document_raises(sql_store):
    with pytest.raises(NotFoundError):
        await sql_store.update_document("missing", status=DocumentStatus.APPROVED)


@pytest.mark.asyncio
async def test_pending_unverified_ids(sql_store):
    assert await sql_store.find_pending_unverified() == ["doc-1"]

    await sql_store.update_document("doc-1", ai_status=AIStatus.NEEDS_REVIEW)
    assert await sql_store.find_pending_unverified() == ["doc-1"]

    await sql_store.update_document("doc-1", status=DocumentStatus.NEEDS_REVIEW)
    assert await sql_store.find_pending_unverified() == []


@pytest.mark.asyncio
async def test_badges_follow_document_type(sql_store, session_factory):
    await sql_store.update_contractor_badge("user-1", DocumentType.INSURANCE, True)
    await sql_store.update_contractor_badge("user-1", DocumentType.CERT, True)
    await sql_store.update_contractor_badge("user-1", DocumentType.OTHER, False)
    await sql_store.update_contractor_badge("nobody", DocumentType.LICENSE, True)

    contractor = await _contractor(session_factory)
    assert contractor.verified_insurance is True
    assert contractor.verified_license is True

    await sql_store.update_contractor_badge("user-1", DocumentType.LICENSE, False)
    contractor = await _contractor(session_factory)
    assert contractor.verified_license is False


DECISION_FIELDS = {
    "status": DocumentStatus.APPROVED,
    "ai_status": AIStatus.APPROVED,
    "ai_confidence": 0.98,
    "ai_reason": "Auto-approved",
    "policy_number": "GL-123456789",
}


@pytest.mark.asyncio
async def test_persist_decision_writes_fields_badge_and_audit(sql_store, session_factory):
    document = await sql_store.load_document("doc-1")

    await sql_store.persist_decision(
        document,
        fields=DECISION_FIELDS,
        verified=True,
        action="AI_VERIFICATION",
        new_value={"status": "APPROVED"},
        description="Auto-approved",
    )

    reloaded = await sql_store.load_document("doc-1")
    assert reloaded.status == DocumentStatus.APPROVED
    assert reloaded.policy_number == "GL-123456789"
    assert (await _contractor(session_factory)).verified_insurance is True
    async with session_factory() as session:
        rows = (await session.execute(select(AuditTrail))).scalars().all()
    assert [r.entity_id for r in rows] == ["doc-1"]


@pytest.mark.asyncio
async def test_persist_decision_rolls_back_when_audit_fails(sql_store, session_factory, monkeypatch):
    async def locked(self, **kwargs):
        raise RuntimeError("audit table locked")

    monkeypatch.setattr(AuditRepository, "record", locked)
    document = await sql_store.load_document("doc-1")

    with pytest.raises(RuntimeError):
        await sql_store.persist_decision(
            document, fields=DECISION_FIELDS, verified=True, action="AI_VERIFICATION",
        )

    reloaded = await sql_store.load_document("doc-1")
    assert reloaded.status == DocumentStatus.PENDING
    assert reloaded.policy_number is None
    assert (await _contractor(session_factory)).verified_insurance is False


def test_badge_field_mapping():
    assert badge_field(DocumentType.INSURANCE) == "verified_insurance"
    assert badge_field(DocumentType.LICENSE) == "verified_license"
    assert badge_field(DocumentType.CERT) == "verified_license"
    assert badge_field(DocumentType.OTHER) is None


@pytest.mark.asyncio
async def test_audit_rows_are_attributed_to_admin(sql_store, session_factory):
    await sql_store.record_audit(
        action="AI_VERIFICATION",
        entity_id="doc-1",
        new_value={"status": "APPROVED", "preview": "CERTIFICATE"},
        description="Auto-approved",
    )

    async with session_factory() as session:
        rows = (await session.execute(select(AuditTrail))).scalars().all()

    assert len(rows) == 1
    assert rows[0].actor_user_id == "admin-1"
    assert rows[0].entity_type == "Document"
    assert rows[0].new_value["status"] == "APPROVED"


@pytest.mark.asyncio
async def test_expired_and_expiring_queries(sql_store):
    today = date(2024, 6, 1)

    expired = await sql_store.find_expired(today)
    expiring = await sql_store.find_expiring(today, date(2024, 6, 8))

    assert [d.id for d in expired] == ["doc-2"]
    assert [d.id for d in expiring] == ["doc-3"]
