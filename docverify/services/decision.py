"""Decision engine: turns merged document fields into a verification decision.

Scoring starts at a base confidence and adds a fixed amount per positive
signal (policy number, issuer, date range, currently in force, liability
coverage), capped below 1.0.  The decision rules are then applied in order:

1. ``effective_to`` in the past → REJECTED, whatever the score.
2. Policy number + issuer + currently in force → AI APPROVED, with the
   confidence floored; the document itself is APPROVED only when that
   confidence clears the approval threshold.
3. Anything else → NEEDS_REVIEW.

The function is pure; "today" is injectable so tests are time-independent.
"""

import re
from dataclasses import dataclass
from datetime import date

from docverify.core.config import Settings, settings
from docverify.domain.document import AIStatus, DocumentStatus, DocumentType
from docverify.schemas.verification import ExtractedFields, VerificationDecision

_LIABILITY_RE = re.compile(r"liability|workers", re.IGNORECASE)


@dataclass(frozen=True)
class DecisionThresholds:
    base_confidence: float = 0.30
    max_confidence: float = 0.98
    approve_confidence_floor: float = 0.82
    approve_threshold: float = 0.80

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "DecisionThresholds":
        return cls(
            base_confidence=config.base_confidence,
            max_confidence=config.max_confidence,
            approve_confidence_floor=config.approve_confidence_floor,
            approve_threshold=config.approve_threshold,
        )


def is_within_window(fields: ExtractedFields, today: date) -> bool:
    if fields.effective_from and fields.effective_to:
        return fields.effective_from <= today <= fields.effective_to
    if fields.effective_to:
        return fields.effective_to >= today
    return True


def is_expired(fields: ExtractedFields, today: date) -> bool:
    return fields.effective_to is not None and fields.effective_to < today


def decide_verification(
    document_type: DocumentType,
    fields: ExtractedFields,
    *,
    today: date | None = None,
    thresholds: DecisionThresholds | None = None,
) -> VerificationDecision:
    today = today or date.today()
    limits = thresholds or DecisionThresholds.from_settings()
    number_label = "Policy" if document_type == DocumentType.INSURANCE else "Policy or license"

    confidence = limits.base_confidence
    reasons: list[str] = []

    if fields.policy_number:
        confidence += 0.25
        reasons.append(f"{number_label} number detected.")
    else:
        reasons.append(f"{number_label} number missing.")

    if fields.issuer:
        confidence += 0.20
        reasons.append("Issuer identified.")
    else:
        reasons.append("Issuer not confidently identified.")

    if fields.effective_from and fields.effective_to:
        confidence += 0.15
        reasons.append("Effective date range extracted.")

    within_window = is_within_window(fields, today)
    expired = is_expired(fields, today)
    if within_window:
        confidence += 0.15
        reasons.append("Document appears current.")
    elif expired:
        reasons.append("Document appears expired.")

    if any(_LIABILITY_RE.search(item) for item in fields.coverage):
        confidence += 0.10
        reasons.append("Coverage keywords detected.")

    confidence = round(min(confidence, limits.max_confidence), 4)
    summary = " ".join(reasons)

    if expired:
        return VerificationDecision(
            ai_status=AIStatus.REJECTED,
            status=DocumentStatus.REJECTED,
            confidence=confidence,
            reason=f"{summary} Auto-rejected because coverage appears expired.",
            fields=fields,
        )

    if fields.policy_number and fields.issuer and within_window:
        adjusted = max(confidence, limits.approve_confidence_floor)
        status = (
            DocumentStatus.APPROVED if adjusted >= limits.approve_threshold
            else DocumentStatus.NEEDS_REVIEW
        )
        return VerificationDecision(
            ai_status=AIStatus.APPROVED,
            status=status,
            confidence=adjusted,
            reason=f"{summary} Auto-approved with confidence score {adjusted:.2f}.",
            fields=fields,
        )

    return VerificationDecision(
        ai_status=AIStatus.NEEDS_REVIEW,
        status=DocumentStatus.NEEDS_REVIEW,
        confidence=confidence,
        reason=f"{summary} Flagged for manual review.",
        fields=fields,
    )
