"""Walk request operations: submit, retry, cancel, confirm, read, and the expiry sweep."""
import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.config import settings
from walkbuddy.errors import Conflict, InvalidState, NotFound, Unauthorized, translate_upstream_errors
from walkbuddy.models.match import MatchStatus
from walkbuddy.models.profile import Profile
from walkbuddy.models.walk_request import RequestStatus, WalkRequest
from walkbuddy.services.clock import ensure_utc, utcnow
from walkbuddy.services.matcher import MatchResult, find_match, find_match_for_request, load_request
from walkbuddy.services.matches import end_match, load_match_for_party
from walkbuddy.services.state_machine import check_request_transition, expire_overdue, transition_match, transition_request
from walkbuddy.services.ws_updates import updates_manager

logger = logging.getLogger(__name__)

Coord = tuple[float, float]


async def _notify_match(result: MatchResult) -> None:
    if result.matched:
        await updates_manager.notify_users(result.user_ids, {"type": "matches", "match_id": result.match_id})


async def _owned_request(db: AsyncSession, request_id: int, user_id: int) -> WalkRequest:
    request = await load_request(db, request_id)
    if request is None:
        raise NotFound("Walk request not found", resource="walk_request", resource_id=request_id)
    if request.user_id != user_id:
        raise Unauthorized("You can only act on your own requests", resource="walk_request", resource_id=request_id)
    return request


@translate_upstream_errors
async def submit_request(
    db: AsyncSession,
    user_id: int,
    start: Coord,
    dest: Coord,
    now: datetime | None = None,
) -> tuple[WalkRequest, MatchResult]:
    """Create a waiting request (TTL from settings) and immediately try to match it."""
    now = now or utcnow()
    profile = await db.get(Profile, user_id)
    if profile is None:
        raise NotFound("Profile not found", resource="profile", resource_id=user_id)
    if profile.is_banned:
        raise Unauthorized("Banned users cannot request a walk buddy", resource="profile", resource_id=user_id)

    request = WalkRequest(
        user_id=user_id,
        start_lat=start[0],
        start_lng=start[1],
        dest_lat=dest[0],
        dest_lng=dest[1],
        status=RequestStatus.WAITING,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.REQUEST_TTL_MINUTES),
    )
    db.add(request)
    await db.flush()
    request_id = request.id
    # Visible to concurrent matchers before we go looking for a buddy
    await db.commit()
    logger.info("Walk request %s created by user %s", request_id, user_id)

    # A concurrent matcher may pair the request before we get to it
    result = await find_match(db, request_id, now=now, require_waiting=False)
    await _notify_match(result)
    return await load_request(db, request_id), result


@translate_upstream_errors
async def retry_match(
    db: AsyncSession,
    request_id: int,
    user_id: int | None = None,
    now: datetime | None = None,
) -> MatchResult:
    """
    Re-run the matcher for a waiting request. A lapsed request is expired on
    the spot; one that is already matched returns its current pairing.
    """
    now = now or utcnow()
    if user_id is None:
        request = await load_request(db, request_id)
        if request is None:
            raise NotFound("Walk request not found", resource="walk_request", resource_id=request_id)
    else:
        request = await _owned_request(db, request_id, user_id)
    if request.status == RequestStatus.WAITING and ensure_utc(request.expires_at) <= now:
        await transition_request(db, request_id, RequestStatus.WAITING, RequestStatus.EXPIRED)
        await db.commit()
        raise InvalidState(
            "Walk request has expired",
            resource="walk_request",
            resource_id=request_id,
            from_state=RequestStatus.EXPIRED.value,
            to_state=RequestStatus.MATCHED.value,
        )
    result = await find_match(db, request_id, now=now, require_waiting=False)
    await _notify_match(result)
    return result


@translate_upstream_errors
async def cancel_request(db: AsyncSession, request_id: int, user_id: int) -> WalkRequest:
    """
    Owner cancels a waiting or matched request. Cancelling a matched request
    calls off the whole pairing: its match and the buddy's request are
    cancelled too.
    """
    request = await _owned_request(db, request_id, user_id)
    check_request_transition(request_id, request.status, RequestStatus.CANCELLED)
    notify = [user_id]
    if request.status == RequestStatus.WAITING:
        if not await transition_request(db, request_id, RequestStatus.WAITING, RequestStatus.CANCELLED):
            await db.rollback()
            raise Conflict("Walk request changed concurrently", resource="walk_request", resource_id=request_id)
    else:
        match = await find_match_for_request(db, request_id)
        if match is not None and match.status in (MatchStatus.PENDING, MatchStatus.ACTIVE):
            match, requests = await load_match_for_party(db, match.id, user_id)
            notify = await end_match(db, match, requests, MatchStatus.CANCELLED)
        elif not await transition_request(db, request_id, RequestStatus.MATCHED, RequestStatus.CANCELLED):
            await db.rollback()
            raise Conflict("Walk request changed concurrently", resource="walk_request", resource_id=request_id)
    await db.commit()
    logger.info("Walk request %s cancelled by user %s", request_id, user_id)
    await updates_manager.notify_users(notify, {"type": "walk_requests", "request_id": request_id})
    return await load_request(db, request_id)


@translate_upstream_errors
async def confirm_meetup(db: AsyncSession, request_id: int, user_id: int) -> WalkRequest:
    """Owner confirms they met their buddy: matched -> completed, match pending -> active."""
    request = await _owned_request(db, request_id, user_id)
    check_request_transition(request_id, request.status, RequestStatus.COMPLETED)
    if not await transition_request(db, request_id, RequestStatus.MATCHED, RequestStatus.COMPLETED):
        await db.rollback()
        raise Conflict("Walk request changed concurrently", resource="walk_request", resource_id=request_id)
    match = await find_match_for_request(db, request_id)
    notify = [user_id]
    if match is None:
        logger.warning("Confirmed request %s has no match record", request_id)
    else:
        if match.status == MatchStatus.PENDING:
            await transition_match(db, match, MatchStatus.ACTIVE)
        notify.append(request.matched_with)
    await db.commit()
    await updates_manager.notify_users(notify, {"type": "walk_requests", "request_id": request_id})
    return await load_request(db, request_id)


@translate_upstream_errors
async def get_request(db: AsyncSession, request_id: int, user_id: int) -> WalkRequest:
    """Owner or current buddy may read a request."""
    request = await load_request(db, request_id)
    if request is None:
        raise NotFound("Walk request not found", resource="walk_request", resource_id=request_id)
    if user_id not in (request.user_id, request.matched_with):
        raise Unauthorized("Not your walk request", resource="walk_request", resource_id=request_id)
    return request


@translate_upstream_errors
async def list_user_requests(db: AsyncSession, user_id: int) -> list[WalkRequest]:
    result = await db.execute(
        select(WalkRequest)
        .where(WalkRequest.user_id == user_id)
        .order_by(WalkRequest.created_at.desc(), WalkRequest.id.desc())
    )
    return list(result.scalars().all())


@translate_upstream_errors
async def sweep_expired(db: AsyncSession, now: datetime | None = None) -> int:
    """Expire every overdue waiting request. Safe to repeat; other states are never touched."""
    now = now or utcnow()
    count = await expire_overdue(db, now)
    await db.commit()
    if count:
        logger.info("Expired %d walk request(s)", count)
    return count


@translate_upstream_errors
async def retry_waiting(db: AsyncSession, now: datetime | None = None) -> int:
    """Re-run the matcher for every still-waiting request, oldest first. Returns matches made."""
    now = now or utcnow()
    result = await db.execute(
        select(WalkRequest.id)
        .where(WalkRequest.status == RequestStatus.WAITING)
        .where(WalkRequest.expires_at > now)
        .order_by(WalkRequest.created_at, WalkRequest.id)
    )
    matched = 0
    for request_id in result.scalars().all():
        try:
            outcome = await find_match(db, request_id, now=now)
        except InvalidState:
            # Already paired earlier in this pass
            continue
        if outcome.matched:
            matched += 1
            await _notify_match(outcome)
    return matched
