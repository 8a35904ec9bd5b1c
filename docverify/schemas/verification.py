"""Verification pipeline schemas: extracted fields, decisions, and API views."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from docverify.domain.document import AIStatus, DocumentStatus, DocumentType
from docverify.schemas.common import CamelModel


class ExtractedFields(BaseModel):
    """Facts pulled from a document's text for one verification attempt."""

    issuer: str | None = None
    policy_number: str | None = None
    effective_from: date | None = None
    effective_to: date | None = None
    coverage: list[str] = Field(default_factory=list)  # unique labels, insertion order


class ModelExtraction(BaseModel):
    """Language-model output before date normalisation."""

    issuer: str | None = None
    policy_number: str | None = Field(default=None, alias="policyNumber")
    effective_from: str | None = Field(default=None, alias="effectiveFrom")
    effective_to: str | None = Field(default=None, alias="effectiveTo")
    coverage: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class VerificationDecision(BaseModel):
    ai_status: AIStatus
    status: DocumentStatus
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    fields: ExtractedFields


class DocumentRecord(BaseModel):
    """Read-only snapshot of a persisted document handed to the pipeline."""

    id: str
    user_id: str
    type: DocumentType
    url: str
    status: DocumentStatus = DocumentStatus.PENDING
    ai_status: AIStatus = AIStatus.NONE
    ai_confidence: float | None = None
    ai_reason: str | None = None
    issuer: str | None = None
    policy_number: str | None = None
    effective_from: date | None = None
    effective_to: date | None = None
    notes: str | None = None
    owner_email: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------

class DocumentVerificationOut(CamelModel):
    id: str
    type: DocumentType
    status: DocumentStatus
    ai_status: AIStatus
    ai_confidence: float | None = None
    ai_reason: str | None = None
    issuer: str | None = None
    policy_number: str | None = None
    effective_from: date | None = None
    effective_to: date | None = None
    updated_at: datetime | None = None


class VerificationQueuedOut(CamelModel):
    document_id: str
    queued: bool


class ExpirySweepOut(CamelModel):
    expired: int


def decision_payload(decision: VerificationDecision) -> dict[str, Any]:
    """JSON-safe summary used for audit rows and in-app notifications."""
    fields = decision.fields
    return {
        "status": decision.status.value,
        "aiStatus": decision.ai_status.value,
        "confidence": decision.confidence,
        "reason": decision.reason,
        "issuer": fields.issuer,
        "policyNumber": fields.policy_number,
        "effectiveFrom": fields.effective_from.isoformat() if fields.effective_from else None,
        "effectiveTo": fields.effective_to.isoformat() if fields.effective_to else None,
        "coverage": list(fields.coverage),
    }
