"""Pydantic models for the FastAPI boundary."""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from fire_enrich.core.models import CamelModel, EnrichmentField, Row


class EnrichRequest(CamelModel):
    rows: List[Row] = Field(default_factory=list)
    fields: List[EnrichmentField] = Field(default_factory=list)
    email_column: Optional[str] = None
    name_column: Optional[str] = None


class CancelResponse(CamelModel):
    success: bool
    session_id: str


class HealthResponse(CamelModel):
    status: str
    version: str
    providers: dict
    active_sessions: int
