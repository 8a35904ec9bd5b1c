"""SQLAlchemy ORM models for users and their contractor profile badges."""

from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docverify.db.base import Base
from docverify.domain.mixins import TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    # "ADMIN" | "CONTRACTOR" | "HOMEOWNER"
    role: Mapped[str] = mapped_column(String(20), default="CONTRACTOR", nullable=False)

    documents: Mapped[List["Document"]] = relationship(back_populates="user", lazy="noload")
    contractor: Mapped[Optional["Contractor"]] = relationship(
        back_populates="user", lazy="noload"
    )


class Contractor(Base, TimestampMixin):
    """Contractor profile; only the derived verification badges live here."""

    __tablename__ = "contractors"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    verified_license: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_insurance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship(back_populates="contractor", lazy="noload")
