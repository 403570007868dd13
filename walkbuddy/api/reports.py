"""Report routes: file a report, list mine, poll the safety analysis it triggered."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.database import get_db
from walkbuddy.deps import get_current_profile
from walkbuddy.models.profile import Profile
from walkbuddy.schemas.report import ReportCreate, ReportResponse, SafetyAnalysisStatus
from walkbuddy.services import reports as service

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("", response_model=ReportResponse)
async def submit_report(
    body: ReportCreate,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """File a report. Lowers the reported user's trust score; may schedule a safety analysis."""
    return await service.submit_report(
        db,
        reporter_id=current.id,
        reported_user_id=body.reported_user_id,
        reason=body.reason,
        details=body.details,
        match_id=body.match_id,
    )


@router.get("/mine", response_model=list[ReportResponse])
async def list_my_reports(
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    return await service.list_reports_by_reporter(db, current.id)


@router.get("/{report_id}/analysis", response_model=SafetyAnalysisStatus)
async def get_report_analysis(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current: Profile = Depends(get_current_profile),
):
    """Poll the background safety analysis of the user this report was filed against."""
    return await service.get_report_analysis(db, report_id, current.id)
