"""Pydantic schemas for reports."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ReportCreate(BaseModel):
    reported_user_id: int
    match_id: int | None = None
    reason: str = Field(..., min_length=1, max_length=255)
    details: str | None = Field(default=None, max_length=4000)


class ReportResponse(BaseModel):
    id: int
    reporter_id: int
    reported_user_id: int
    match_id: int | None = None
    reason: str
    details: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class SafetyAnalysisStatus(BaseModel):
    """Polled state of the background safety analysis; status is none until one was scheduled."""
    user_id: int
    status: str
    updated_at: str | None = None
    analysis: dict[str, Any] | None = None
    reason: str | None = None
    error: str | None = None
