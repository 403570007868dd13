"""Walk request / match state machines and their conditional updates.

Every transition is written as `UPDATE ... WHERE id = :id AND status = :expected`
and succeeds only if the row was still in the expected state, so two writers
racing on the same row can never both win.
"""
from datetime import datetime

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.errors import InvalidState
from walkbuddy.models.match import Match, MatchStatus
from walkbuddy.models.walk_request import RequestStatus, WalkRequest

# Allowed transitions: from_state -> {to_state, ...}
REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.WAITING: {RequestStatus.MATCHED, RequestStatus.EXPIRED, RequestStatus.CANCELLED},
    RequestStatus.MATCHED: {RequestStatus.COMPLETED, RequestStatus.CANCELLED},
    RequestStatus.EXPIRED: set(),
    RequestStatus.CANCELLED: set(),
    RequestStatus.COMPLETED: set(),
}

MATCH_TRANSITIONS: dict[MatchStatus, set[MatchStatus]] = {
    MatchStatus.PENDING: {MatchStatus.ACTIVE, MatchStatus.COMPLETED, MatchStatus.CANCELLED},
    MatchStatus.ACTIVE: {MatchStatus.COMPLETED, MatchStatus.CANCELLED},
    MatchStatus.COMPLETED: set(),
    MatchStatus.CANCELLED: set(),
}


def check_request_transition(request_id: int, current: RequestStatus, to_state: RequestStatus) -> None:
    if to_state not in REQUEST_TRANSITIONS.get(current, set()):
        raise InvalidState(
            f"Walk request cannot go from {current.value} to {to_state.value}",
            resource="walk_request",
            resource_id=request_id,
            from_state=current.value,
            to_state=to_state.value,
        )


def check_match_transition(match_id: int, current: MatchStatus, to_state: MatchStatus) -> None:
    if to_state not in MATCH_TRANSITIONS.get(current, set()):
        raise InvalidState(
            f"Match cannot go from {current.value} to {to_state.value}",
            resource="match",
            resource_id=match_id,
            from_state=current.value,
            to_state=to_state.value,
        )


async def transition_request(
    db: AsyncSession,
    request_id: int,
    expected: RequestStatus,
    to_state: RequestStatus,
    **values,
) -> bool:
    """Move one request expected -> to_state. Returns False if it was no longer in `expected`."""
    check_request_transition(request_id, expected, to_state)
    result = await db.execute(
        update(WalkRequest)
        .where(WalkRequest.id == request_id)
        .where(WalkRequest.status == expected)
        .values(status=to_state, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def claim_pair(
    db: AsyncSession,
    request_id: int,
    user_id: int,
    other_request_id: int,
    other_user_id: int,
    now: datetime,
) -> bool:
    """
    Flip both requests waiting -> matched in a single statement, pointing each
    at the other's owner. True only if both rows were still waiting and unexpired.
    The caller must roll back when this returns False.
    """
    result = await db.execute(
        update(WalkRequest)
        .where(WalkRequest.id.in_([request_id, other_request_id]))
        .where(WalkRequest.status == RequestStatus.WAITING)
        .where(WalkRequest.expires_at > now)
        .values(
            status=RequestStatus.MATCHED,
            matched_with=case((WalkRequest.id == request_id, other_user_id), else_=user_id),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 2


async def expire_overdue(db: AsyncSession, now: datetime) -> int:
    """waiting -> expired for every request whose deadline is at or before `now`."""
    result = await db.execute(
        update(WalkRequest)
        .where(WalkRequest.status == RequestStatus.WAITING)
        .where(WalkRequest.expires_at <= now)
        .values(status=RequestStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def transition_match(db: AsyncSession, match: Match, to_state: MatchStatus) -> bool:
    """Move a match from its loaded status to to_state if nobody changed it meanwhile."""
    check_match_transition(match.id, match.status, to_state)
    result = await db.execute(
        update(Match)
        .where(Match.id == match.id)
        .where(Match.status == match.status)
        .values(status=to_state)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
