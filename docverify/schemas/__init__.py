"""Pydantic schemas package.

Folder intent:
  common.py        - CamelModel base, DataResponse envelope, HealthResponse
  verification.py  - pipeline types (ExtractedFields, VerificationDecision, DocumentRecord)
                     and the /api/v1/documents response schemas
"""
