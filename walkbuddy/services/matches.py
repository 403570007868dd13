"""Match read/complete/cancel for the two parties of a pairing."""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.errors import Conflict, NotFound, Unauthorized, translate_upstream_errors
from walkbuddy.models.match import Match, MatchStatus
from walkbuddy.models.profile import Profile
from walkbuddy.models.walk_request import RequestStatus, WalkRequest
from walkbuddy.services.matcher import find_match_for_request, load_request
from walkbuddy.services.state_machine import transition_match, transition_request
from walkbuddy.services.ws_updates import updates_manager

logger = logging.getLogger(__name__)


@dataclass
class MatchDetails:
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


async def _load_match(db: AsyncSession, match_id: int) -> Match:
    result = await db.execute(
        select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    )
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFound("Match not found", resource="match", resource_id=match_id)
    return match


async def _match_requests(db: AsyncSession, match: Match) -> list[WalkRequest]:
    result = await db.execute(
        select(WalkRequest)
        .where(WalkRequest.id.in_(match.request_ids))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def load_match_for_party(db: AsyncSession, match_id: int, user_id: int) -> tuple[Match, list[WalkRequest]]:
    """Load a match and its requests; Unauthorized unless `user_id` owns one of them."""
    match = await _load_match(db, match_id)
    requests = await _match_requests(db, match)
    if not any(r.user_id == user_id for r in requests):
        raise Unauthorized("You are not part of this match", resource="match", resource_id=match_id)
    return match, requests


async def end_match(
    db: AsyncSession,
    match: Match,
    requests: list[WalkRequest],
    to_state: MatchStatus,
) -> list[int]:
    """
    Move a match to completed/cancelled and carry its still-matched requests
    along (matched -> completed / cancelled). Returns the affected user ids.
    Does not commit.
    """
    if not await transition_match(db, match, to_state):
        raise Conflict("Match changed concurrently", resource="match", resource_id=match.id)
    request_state = RequestStatus.COMPLETED if to_state == MatchStatus.COMPLETED else RequestStatus.CANCELLED
    for r in requests:
        if r.status == RequestStatus.MATCHED:
            # A party may already have confirmed their side; that is fine
            await transition_request(db, r.id, RequestStatus.MATCHED, request_state)
    return [r.user_id for r in requests]


@translate_upstream_errors
async def get_match_details(db: AsyncSession, request_id: int, user_id: int) -> MatchDetails | None:
    """Buddy and meetup info for a request; None while it has no match."""
    request = await load_request(db, request_id)
    if request is None:
        raise NotFound("Walk request not found", resource="walk_request", resource_id=request_id)
    if user_id not in (request.user_id, request.matched_with):
        raise Unauthorized("Not your walk request", resource="walk_request", resource_id=request_id)
    match = await find_match_for_request(db, request_id)
    if match is None:
        return None
    buddy_request_id = match.request_2_id if match.request_1_id == request_id else match.request_1_id
    buddy_request = await load_request(db, buddy_request_id)
    if buddy_request is None:
        raise NotFound("Buddy request not found", resource="walk_request", resource_id=buddy_request_id)
    buddy = await db.get(Profile, buddy_request.user_id)
    if buddy is None:
        raise NotFound("Buddy profile not found", resource="profile", resource_id=buddy_request.user_id)
    return MatchDetails(
        match_id=match.id,
        buddy_id=buddy.id,
        buddy_first_name=buddy.first_name,
        buddy_trust_score=buddy.trust_score,
        meetup_lat=match.meetup_lat,
        meetup_lng=match.meetup_lng,
        buddy_start_lat=buddy_request.start_lat,
        buddy_start_lng=buddy_request.start_lng,
        buddy_dest_lat=buddy_request.dest_lat,
        buddy_dest_lng=buddy_request.dest_lng,
        match_status=match.status,
        created_at=match.created_at,
    )


@translate_upstream_errors
async def complete_match(db: AsyncSession, match_id: int, user_id: int) -> Match:
    match, requests = await load_match_for_party(db, match_id, user_id)
    user_ids = await end_match(db, match, requests, MatchStatus.COMPLETED)
    await db.commit()
    logger.info("Match %s completed by user %s", match_id, user_id)
    await updates_manager.notify_users(user_ids, {"type": "matches", "match_id": match_id})
    return await _load_match(db, match_id)


@translate_upstream_errors
async def cancel_match(db: AsyncSession, match_id: int, user_id: int) -> Match:
    match, requests = await load_match_for_party(db, match_id, user_id)
    user_ids = await end_match(db, match, requests, MatchStatus.CANCELLED)
    await db.commit()
    logger.info("Match %s cancelled by user %s", match_id, user_id)
    await updates_manager.notify_users(user_ids, {"type": "matches", "match_id": match_id})
    return await _load_match(db, match_id)


@translate_upstream_errors
async def list_user_matches(db: AsyncSession, user_id: int) -> list[Match]:
    """Every match involving one of the user's requests, newest first."""
    mine = select(WalkRequest.id).where(WalkRequest.user_id == user_id)
    result = await db.execute(
        select(Match)
        .where(or_(Match.request_1_id.in_(mine), Match.request_2_id.in_(mine)))
        .order_by(Match.created_at.desc(), Match.id.desc())
    )
    return list(result.scalars().all())
