"""Domain package: all ORM models are imported here so table creation sees them.

Folder intent:
  document.py  - uploaded compliance documents + status enums
  user.py      - users and contractor badges derived from verification
  audit.py     - immutable audit trail (never updated or deleted)
  mixins.py    - shared TimestampMixin
"""

from docverify.domain.audit import AuditTrail
from docverify.domain.document import AIStatus, Document, DocumentStatus, DocumentType
from docverify.domain.user import Contractor, User

__all__ = [
    "AIStatus",
    "AuditTrail",
    "Contractor",
    "Document",
    "DocumentStatus",
    "DocumentType",
    "User",
]
