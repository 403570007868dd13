"""Walk request routes: submit, list mine, read, retry, cancel, confirm, match details (auth required)."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.database import get_db
from walkbuddy.deps import get_current_profile
from walkbuddy.models.profile import Profile
from walkbuddy.schemas.match import MatchDetailsResponse
from walkbuddy.schemas.walk_request import MatchOutcome, WalkRequestCreate, WalkRequestCreated, WalkRequestResponse
from walkbuddy.services import matches as match_service
from walkbuddy.services import walk_requests as service
from walkbuddy.services.matcher import MatchResult

router = APIRouter(prefix="/walk-requests", tags=["walk-requests"])


def _outcome(result: MatchResult) -> MatchOutcome:
    return MatchOutcome(
        match_found=result.matched,
        matched_request_id=result.matched_request_id,
        match_id=result.match_id,
        meetup_lat=result.meetup_lat,
        meetup_lng=result.meetup_lng,
    )


@router.post("", response_model=WalkRequestCreated)
async def submit_walk_request(
    body: WalkRequestCreate,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """Create a waiting request (expires after the configured TTL) and try to match it right away."""
    request, result = await service.submit_request(
        db, current.id, (body.start_lat, body.start_lng), (body.dest_lat, body.dest_lng)
    )
    return WalkRequestCreated(request=WalkRequestResponse.model_validate(request), match=_outcome(result))


@router.get("/me", response_model=list[WalkRequestResponse])
async def list_my_walk_requests(
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    return await service.list_user_requests(db, current.id)


@router.get("/{request_id}", response_model=WalkRequestResponse)
async def get_walk_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """Current status of a request (owner or matched buddy)."""
    return await service.get_request(db, request_id, current.id)


@router.post("/{request_id}/retry-match", response_model=MatchOutcome)
async def retry_walk_request_match(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    return _outcome(await service.retry_match(db, request_id, current.id))


@router.post("/{request_id}/cancel", response_model=WalkRequestResponse)
async def cancel_walk_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """Cancel a waiting or matched request. A matched request calls off the whole pairing."""
    return await service.cancel_request(db, request_id, current.id)


@router.post("/{request_id}/confirm", response_model=WalkRequestResponse)
async def confirm_walk_request_meetup(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """Confirm you met your buddy (matched -> completed; match becomes active)."""
    return await service.confirm_meetup(db, request_id, current.id)


@router.get("/{request_id}/match", response_model=MatchDetailsResponse | None)
async def get_walk_request_match(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """Buddy card and meetup point; null while still waiting."""
    return await match_service.get_match_details(db, request_id, current.id)
