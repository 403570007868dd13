from datetime import timedelta

import pytest
from sqlalchemy import select

from tests.conftest import SF_DEST, SF_START
from walkbuddy.errors import Conflict, InvalidState, NotFound, Unauthorized
from walkbuddy.models import Match, MatchStatus, RequestStatus, WalkRequest
from walkbuddy.services import walk_requests
from walkbuddy.services.matcher import load_request
from walkbuddy.services.walk_requests import (
    cancel_request,
    confirm_meetup,
    get_request,
    list_user_requests,
    retry_match,
    submit_request,
    sweep_expired,
)


async def _statuses(db):
    rows = (await db.execute(select(WalkRequest.id, WalkRequest.status).order_by(WalkRequest.id))).all()
    return [(r.id, r.status) for r in rows]


async def _matched_pair(db, make_profile, make_request, now):
    await make_profile(1)
    await make_profile(2)
    await make_request(2)
    request, result = await submit_request(db, 1, SF_START, SF_DEST, now=now)
    assert result.matched
    return request.id, result.matched_request_id, result.match_id


@pytest.mark.asyncio
async def test_submit_sets_ten_minute_expiry(db, make_profile, now):
    await make_profile(1)

    request, result = await submit_request(db, 1, SF_START, SF_DEST, now=now)

    assert not result.matched
    assert request.status == RequestStatus.WAITING
    assert request.expires_at.replace(tzinfo=None) == (now + timedelta(minutes=10)).replace(tzinfo=None)


@pytest.mark.asyncio
async def test_banned_user_cannot_submit(db, make_profile, now):
    await make_profile(1, is_banned=True)

    with pytest.raises(Unauthorized):
        await submit_request(db, 1, SF_START, SF_DEST, now=now)
    assert await list_user_requests(db, 1) == []


@pytest.mark.asyncio
async def test_submit_without_profile_is_not_found(db, now):
    with pytest.raises(NotFound):
        await submit_request(db, 42, SF_START, SF_DEST, now=now)


@pytest.mark.asyncio
async def test_sweep_expires_overdue_request_once(db, make_profile, now):
    await make_profile(1)
    request, _ = await submit_request(db, 1, SF_START, SF_DEST, now=now)

    assert await sweep_expired(db, now + timedelta(minutes=11)) == 1
    assert (await load_request(db, request.id)).status == RequestStatus.EXPIRED
    after_first = await _statuses(db)

    assert await sweep_expired(db, now + timedelta(minutes=20)) == 0
    assert await _statuses(db) == after_first


@pytest.mark.asyncio
async def test_sweep_leaves_fresh_and_settled_requests_alone(db, make_profile, make_request, now):
    await make_profile(1)
    fresh = await make_request(1, created_at=now + timedelta(minutes=5))
    matched = await make_request(1, status=RequestStatus.MATCHED, matched_with=2)
    cancelled = await make_request(1, status=RequestStatus.CANCELLED)
    completed = await make_request(1, status=RequestStatus.COMPLETED)

    assert await sweep_expired(db, now + timedelta(minutes=11)) == 0

    assert dict(await _statuses(db)) == {
        fresh: RequestStatus.WAITING,
        matched: RequestStatus.MATCHED,
        cancelled: RequestStatus.CANCELLED,
        completed: RequestStatus.COMPLETED,
    }


@pytest.mark.asyncio
async def test_sweep_at_exact_deadline_expires(db, make_profile, make_request, now):
    await make_profile(1)
    request_id = await make_request(1)

    assert await sweep_expired(db, now + timedelta(minutes=10)) == 1
    assert (await load_request(db, request_id)).status == RequestStatus.EXPIRED


@pytest.mark.asyncio
async def test_only_owner_can_cancel(db, make_profile, make_request):
    await make_profile(1)
    await make_profile(2)
    request_id = await make_request(1)

    with pytest.raises(Unauthorized):
        await cancel_request(db, request_id, 2)

    cancelled = await cancel_request(db, request_id, 1)
    assert cancelled.status == RequestStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_missing_request(db):
    with pytest.raises(NotFound):
        await cancel_request(db, 999, 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [RequestStatus.EXPIRED, RequestStatus.CANCELLED, RequestStatus.COMPLETED])
async def test_cancel_terminal_request_is_invalid(db, make_profile, make_request, status):
    await make_profile(1)
    request_id = await make_request(1, status=status)

    with pytest.raises(InvalidState) as exc:
        await cancel_request(db, request_id, 1)
    assert exc.value.from_state == status.value


@pytest.mark.asyncio
async def test_cancel_loses_to_concurrent_transition(db, session_factory, make_profile, make_request, monkeypatch):
    await make_profile(1)
    request_id = await make_request(1)
    real_transition = walk_requests.transition_request

    async def expire_first(session, rid, expected, to_state, **values):
        async with session_factory() as other:
            await real_transition(other, rid, RequestStatus.WAITING, RequestStatus.EXPIRED)
            await other.commit()
        return await real_transition(session, rid, expected, to_state, **values)

    monkeypatch.setattr(walk_requests, "transition_request", expire_first)

    with pytest.raises(Conflict):
        await cancel_request(db, request_id, 1)
    assert (await load_request(db, request_id)).status == RequestStatus.EXPIRED


@pytest.mark.asyncio
async def test_cancel_matched_request_calls_off_the_pairing(db, make_profile, make_request, now):
    mine, buddy, match_id = await _matched_pair(db, make_profile, make_request, now)

    cancelled = await cancel_request(db, mine, 1)

    assert cancelled.status == RequestStatus.CANCELLED
    assert (await load_request(db, buddy)).status == RequestStatus.CANCELLED
    match = (await db.execute(select(Match).where(Match.id == match_id))).scalar_one()
    await db.refresh(match)
    assert match.status == MatchStatus.CANCELLED


@pytest.mark.asyncio
async def test_confirm_meetup_completes_request_and_activates_match(db, make_profile, make_request, now):
    mine, buddy, match_id = await _matched_pair(db, make_profile, make_request, now)

    confirmed = await confirm_meetup(db, mine, 1)

    assert confirmed.status == RequestStatus.COMPLETED
    assert (await load_request(db, buddy)).status == RequestStatus.MATCHED
    match = await db.get(Match, match_id)
    await db.refresh(match)
    assert match.status == MatchStatus.ACTIVE


@pytest.mark.asyncio
async def test_confirm_requires_matched_request(db, make_profile, make_request):
    await make_profile(1)
    request_id = await make_request(1)

    with pytest.raises(InvalidState):
        await confirm_meetup(db, request_id, 1)


@pytest.mark.asyncio
async def test_retry_match_pairs_with_later_arrival(db, make_profile, make_request, now):
    await make_profile(1)
    await make_profile(2, trust_score=30)
    request, result = await submit_request(db, 1, SF_START, SF_DEST, now=now)
    assert not result.matched

    later = await make_request(2, created_at=now + timedelta(minutes=1))
    # User 2 is not trustworthy enough, still nothing
    assert not (await retry_match(db, request.id, 1, now=now + timedelta(minutes=1))).matched

    await make_profile(3)
    other = await make_request(3, created_at=now + timedelta(minutes=2))
    result = await retry_match(db, request.id, 1, now=now + timedelta(minutes=2))

    assert result.matched_request_id == other
    assert (await load_request(db, later)).status == RequestStatus.WAITING


@pytest.mark.asyncio
async def test_retry_match_on_lapsed_request_expires_it(db, make_profile, make_request, now):
    await make_profile(1)
    request_id = await make_request(1)

    with pytest.raises(InvalidState):
        await retry_match(db, request_id, 1, now=now + timedelta(minutes=15))
    assert (await load_request(db, request_id)).status == RequestStatus.EXPIRED


@pytest.mark.asyncio
async def test_retry_match_on_matched_request_returns_pairing(db, make_profile, make_request, now):
    await make_profile(1)
    await make_profile(2)
    buddy = await make_request(2)
    request, first = await submit_request(db, 1, SF_START, SF_DEST, now=now)

    again = await retry_match(db, request.id, 1, now=now + timedelta(minutes=1))

    assert again.matched_request_id == buddy
    assert again.match_id == first.match_id


@pytest.mark.asyncio
async def test_retry_match_on_cancelled_request_is_invalid(db, make_profile, make_request, now):
    await make_profile(1)
    request_id = await make_request(1, status=RequestStatus.CANCELLED)

    with pytest.raises(InvalidState):
        await retry_match(db, request_id, 1, now=now)


@pytest.mark.asyncio
async def test_retry_match_checks_owner(db, make_profile, make_request, now):
    await make_profile(1)
    request_id = await make_request(1)

    with pytest.raises(Unauthorized):
        await retry_match(db, request_id, 2, now=now)


@pytest.mark.asyncio
async def test_buddy_can_read_request_but_strangers_cannot(db, make_profile, make_request, now):
    mine, buddy, _ = await _matched_pair(db, make_profile, make_request, now)
    await make_profile(3)

    assert (await get_request(db, buddy, 1)).id == buddy
    assert (await get_request(db, mine, 1)).id == mine
    with pytest.raises(Unauthorized):
        await get_request(db, mine, 3)
