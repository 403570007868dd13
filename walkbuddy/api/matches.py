"""Match routes: list mine, complete, cancel (auth required)."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.database import get_db
from walkbuddy.deps import get_current_profile
from walkbuddy.models.profile import Profile
from walkbuddy.schemas.match import MatchResponse
from walkbuddy.services import matches as service

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("/me", response_model=list[MatchResponse])
async def list_my_matches(
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    return await service.list_user_matches(db, current.id)


@router.post("/{match_id}/complete", response_model=MatchResponse)
async def complete_match(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    return await service.complete_match(db, match_id, current.id)


@router.post("/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    return await service.cancel_match(db, match_id, current.id)
