"""SQLAlchemy ORM model for uploaded compliance documents."""

from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docverify.db.base import Base
from docverify.domain.mixins import TimestampMixin


class DocumentType(str, enum.Enum):
    LICENSE = "LICENSE"
    INSURANCE = "INSURANCE"
    CERT = "CERT"
    OTHER = "OTHER"


class DocumentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class AIStatus(str, enum.Enum):
    NONE = "NONE"
    APPROVED = "APPROVED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    REJECTED = "REJECTED"


class Document(Base, TimestampMixin):
    """One uploaded license / insurance file and its verification state."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # LICENSE | INSURANCE | CERT | OTHER
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Storage/CDN reference (bytes are never mutated here)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)

    # PENDING | APPROVED | NEEDS_REVIEW | REJECTED | EXPIRED
    status: Mapped[str] = mapped_column(
        String(20), default=DocumentStatus.PENDING.value, nullable=False, index=True
    )
    # NONE | APPROVED | NEEDS_REVIEW | REJECTED
    ai_status: Mapped[str] = mapped_column(
        String(20), default=AIStatus.NONE.value, nullable=False, index=True
    )
    ai_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    ai_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Extracted key fields
    issuer: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    policy_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    effective_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    effective_to: Mapped[Optional[date]] = mapped_column(Date, index=True, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(back_populates="documents", lazy="selectin")
