"""Pydantic schemas for walk requests: create, response, match outcome."""
from datetime import datetime

from pydantic import BaseModel, Field

from walkbuddy.models.walk_request import RequestStatus


class WalkRequestCreate(BaseModel):
    """Request body for POST /walk-requests."""
    start_lat: float = Field(..., ge=-90, le=90)
    start_lng: float = Field(..., ge=-180, le=180)
    dest_lat: float = Field(..., ge=-90, le=90)
    dest_lng: float = Field(..., ge=-180, le=180)


class WalkRequestResponse(BaseModel):
    id: int
    user_id: int
    start_lat: float
    start_lng: float
    dest_lat: float
    dest_lng: float
    status: RequestStatus
    matched_with: int | None = None
    created_at: datetime
    expires_at: datetime

    class Config:
        from_attributes = True


class MatchOutcome(BaseModel):
    """Result of one matcher run."""
    match_found: bool
    matched_request_id: int | None = None
    match_id: int | None = None
    meetup_lat: float | None = None
    meetup_lng: float | None = None


class WalkRequestCreated(BaseModel):
    """Response for POST /walk-requests: the request plus the immediate match attempt."""
    request: WalkRequestResponse
    match: MatchOutcome
