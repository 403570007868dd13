"""Pydantic schemas for matches."""
from datetime import datetime

from pydantic import BaseModel

from walkbuddy.models.match import MatchStatus


class MatchResponse(BaseModel):
    id: int
    request_1_id: int
    request_2_id: int
    meetup_lat: float
    meetup_lng: float
    status: MatchStatus
    created_at: datetime

    class Config:
        from_attributes = True


class MatchDetailsResponse(BaseModel):
    """Buddy card for one side of a match."""
    match_id: int
    buddy_id: int
    buddy_first_name: str
    buddy_trust_score: int
    meetup_lat: float
    meetup_lng: float
    buddy_start_lat: float
    buddy_start_lng: float
    buddy_dest_lat: float
    buddy_dest_lng: float
    match_status: MatchStatus
    created_at: datetime

    class Config:
        from_attributes = True
