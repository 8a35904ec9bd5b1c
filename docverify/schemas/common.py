"""Shared Pydantic schema bases: camelCase API models and the data envelope."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """All API schemas inherit from this to auto-generate camelCase aliases."""

    model_config = {
        "populate_by_name": True,
        "alias_generator": to_camel,
        "from_attributes": True,
    }


class DataResponse(BaseModel, Generic[T]):
    """Envelope for every /api/v1 payload: ``{ "data": ... }``."""

    data: T


class HealthResponse(BaseModel):
    """Health-check response returned by /health; ``verification`` carries queue + metrics state."""
    status: str = "ok"
    app: str
    env: str
    verification: dict[str, Any] | None = None
