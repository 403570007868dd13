"""Pick the nearest eligible waiting request for a requester and pair them atomically."""
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.config import settings
from walkbuddy.errors import Conflict, InvalidState, NotFound
from walkbuddy.models.match import Match, MatchStatus
from walkbuddy.models.profile import Profile
from walkbuddy.models.walk_request import RequestStatus, WalkRequest
from walkbuddy.services.clock import utcnow
from walkbuddy.services.eligibility import Candidate, eligible_candidates, start_distance
from walkbuddy.services.geo import midpoint
from walkbuddy.services.state_machine import claim_pair

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    matched_request_id: int | None = None
    match_id: int | None = None
    meetup_lat: float | None = None
    meetup_lng: float | None = None
    # Owners of both requests, for notifications
    user_ids: list[int] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.matched_request_id is not None


async def load_request(db: AsyncSession, request_id: int) -> WalkRequest | None:
    """Fresh read of one request (bypasses whatever the session has cached)."""
    result = await db.execute(
        select(WalkRequest).where(WalkRequest.id == request_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_candidates(db: AsyncSession, requester: WalkRequest, now: datetime) -> list[Candidate]:
    """Waiting, unexpired requests of other users with their owner's trust fields, oldest first."""
    q = (
        select(
            WalkRequest.id,
            WalkRequest.user_id,
            WalkRequest.start_lat,
            WalkRequest.start_lng,
            WalkRequest.dest_lat,
            WalkRequest.dest_lng,
            WalkRequest.created_at,
            WalkRequest.expires_at,
            Profile.trust_score,
            Profile.is_banned,
        )
        .join(Profile, Profile.id == WalkRequest.user_id)
        .where(WalkRequest.status == RequestStatus.WAITING)
        .where(WalkRequest.expires_at > now)
        .where(WalkRequest.id != requester.id)
        .where(WalkRequest.user_id != requester.user_id)
        .order_by(WalkRequest.created_at, WalkRequest.id)
    )
    rows = (await db.execute(q)).all()
    return [
        Candidate(
            request_id=r.id,
            user_id=r.user_id,
            start_lat=r.start_lat,
            start_lng=r.start_lng,
            dest_lat=r.dest_lat,
            dest_lng=r.dest_lng,
            created_at=r.created_at,
            expires_at=r.expires_at,
            trust_score=r.trust_score,
            is_banned=r.is_banned,
        )
        for r in rows
    ]


def select_best(requester: WalkRequest, pool: list[Candidate], now: datetime) -> Candidate | None:
    """Nearest eligible candidate by start distance. Stable sort keeps arrival order on ties."""
    eligible = eligible_candidates(requester, pool, now)
    if not eligible:
        return None
    return sorted(eligible, key=lambda c: start_distance(requester, c))[0]


async def find_match_for_request(db: AsyncSession, request_id: int) -> Match | None:
    result = await db.execute(
        select(Match)
        .where(or_(Match.request_1_id == request_id, Match.request_2_id == request_id))
        .order_by(Match.created_at.desc(), Match.id.desc())
        .limit(1)
    )
    return result.scalars().first()


async def _result_from_existing(db: AsyncSession, requester: WalkRequest) -> MatchResult:
    """Someone else paired (or retired) our request while we were retrying."""
    if requester.status != RequestStatus.MATCHED:
        return MatchResult()
    match = await find_match_for_request(db, requester.id)
    if match is None:
        return MatchResult()
    other_id = match.request_2_id if match.request_1_id == requester.id else match.request_1_id
    return MatchResult(
        matched_request_id=other_id,
        match_id=match.id,
        meetup_lat=match.meetup_lat,
        meetup_lng=match.meetup_lng,
        user_ids=[requester.user_id, requester.matched_with] if requester.matched_with else [requester.user_id],
    )


async def _commit_pair(db: AsyncSession, requester: WalkRequest, best: Candidate, now: datetime) -> Match:
    requester_id, requester_user_id = requester.id, requester.user_id
    lat, lng = midpoint(requester.start_lat, requester.start_lng, best.start_lat, best.start_lng)
    claimed = await claim_pair(db, requester_id, requester_user_id, best.request_id, best.user_id, now)
    if not claimed:
        await db.rollback()
        raise Conflict(
            "Candidate or requester no longer waiting",
            resource="walk_request",
            resource_id=best.request_id,
            requester_id=requester_id,
        )
    match = Match(
        request_1_id=requester_id,
        request_2_id=best.request_id,
        meetup_lat=lat,
        meetup_lng=lng,
        status=MatchStatus.PENDING,
        created_at=now,
    )
    db.add(match)
    await db.flush()
    await db.commit()
    return match


async def find_match(
    db: AsyncSession,
    request_id: int,
    now: datetime | None = None,
    max_attempts: int | None = None,
    require_waiting: bool = True,
) -> MatchResult:
    """
    Try to pair a waiting request with its nearest eligible candidate.

    The request must be committed and waiting. Candidate selection reads a
    possibly stale snapshot; the pairing itself is a conditional update that
    only succeeds if both rows are still waiting. A lost race is retried with a
    fresh snapshot up to `max_attempts` times, after which "no match" is
    returned and the request stays waiting. Commits on success.

    With `require_waiting=False` a request that another matcher already
    paired returns that pairing instead of raising InvalidState.
    """
    now = now or utcnow()
    attempts = settings.MATCH_MAX_ATTEMPTS if max_attempts is None else max_attempts
    for attempt in range(1, attempts + 1):
        requester = await load_request(db, request_id)
        if requester is None:
            raise NotFound("Walk request not found", resource="walk_request", resource_id=request_id)
        if requester.status != RequestStatus.WAITING:
            if attempt == 1 and (require_waiting or requester.status != RequestStatus.MATCHED):
                raise InvalidState(
                    f"Only waiting requests can be matched (request is {requester.status.value})",
                    resource="walk_request",
                    resource_id=request_id,
                    from_state=requester.status.value,
                    to_state=RequestStatus.MATCHED.value,
                )
            return await _result_from_existing(db, requester)

        pool = await load_candidates(db, requester, now)
        best = select_best(requester, pool, now)
        if best is None:
            logger.debug("No eligible candidate for request %s (pool=%d)", request_id, len(pool))
            return MatchResult()

        try:
            match = await _commit_pair(db, requester, best, now)
        except Conflict:
            logger.info(
                "Lost race pairing request %s with %s (attempt %d/%d)",
                request_id, best.request_id, attempt, attempts,
            )
            continue

        logger.info("Matched request %s with %s as match %s", request_id, best.request_id, match.id)
        return MatchResult(
            matched_request_id=best.request_id,
            match_id=match.id,
            meetup_lat=match.meetup_lat,
            meetup_lng=match.meetup_lng,
            user_ids=[requester.user_id, best.user_id],
        )

    logger.warning("Giving up matching request %s after %d conflicting attempts", request_id, attempts)
    return MatchResult()
