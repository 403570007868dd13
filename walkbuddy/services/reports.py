"""Filing reports against users: trust penalty and safety analysis trigger."""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from walkbuddy.config import settings
from walkbuddy.errors import InvalidState, NotFound, Unauthorized, translate_upstream_errors
from walkbuddy.models.profile import Profile
from walkbuddy.models.report import Report
from walkbuddy.redis_client import get_redis
from walkbuddy.services import analysis_store
from walkbuddy.services.clock import utcnow
from walkbuddy.services.matches import load_match_for_party
from walkbuddy.services.safety import SafetyAnalysisRunner, safety_runner

logger = logging.getLogger(__name__)


async def apply_trust_penalty(db: AsyncSession, user_id: int, amount: int | None = None) -> None:
    """Lower trust_score by `amount` in one statement, floored at 0."""
    amount = settings.REPORT_TRUST_PENALTY if amount is None else amount
    lowered = Profile.trust_score - amount
    await db.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(trust_score=case((lowered < 0, 0), else_=lowered))
        .execution_options(synchronize_session=False)
    )


async def count_reports_against(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(select(func.count(Report.id)).where(Report.reported_user_id == user_id))
    return result.scalar_one()


@translate_upstream_errors
async def submit_report(
    db: AsyncSession,
    reporter_id: int,
    reported_user_id: int,
    reason: str,
    details: str | None = None,
    match_id: int | None = None,
    now: datetime | None = None,
    runner: SafetyAnalysisRunner | None = None,
) -> Report:
    """
    Record a report, apply the trust penalty, and (from the threshold on)
    schedule a safety analysis of the reported user. The analysis runs in the
    background; this call never waits for it.
    """
    if reporter_id == reported_user_id:
        raise InvalidState("You cannot report yourself", resource="profile", resource_id=reporter_id)
    reported = await db.get(Profile, reported_user_id)
    if reported is None:
        raise NotFound("Reported user not found", resource="profile", resource_id=reported_user_id)
    if match_id is not None:
        await load_match_for_party(db, match_id, reporter_id)

    report = Report(
        reporter_id=reporter_id,
        reported_user_id=reported_user_id,
        match_id=match_id,
        reason=reason,
        details=details or None,
        created_at=now or utcnow(),
    )
    db.add(report)
    await db.flush()
    await apply_trust_penalty(db, reported_user_id)
    total = await count_reports_against(db, reported_user_id)
    await db.commit()
    logger.info("User %s reported by %s (%d report(s) total)", reported_user_id, reporter_id, total)

    if total >= settings.SAFETY_REPORT_THRESHOLD:
        (runner or safety_runner).submit(reported_user_id)
    return report


@translate_upstream_errors
async def list_reports_by_reporter(db: AsyncSession, reporter_id: int) -> list[Report]:
    result = await db.execute(
        select(Report).where(Report.reporter_id == reporter_id).order_by(Report.created_at.desc(), Report.id.desc())
    )
    return list(result.scalars().all())


@translate_upstream_errors
async def list_reports_against(db: AsyncSession, user_id: int) -> list[Report]:
    result = await db.execute(
        select(Report).where(Report.reported_user_id == user_id).order_by(Report.created_at.desc(), Report.id.desc())
    )
    return list(result.scalars().all())


@translate_upstream_errors
async def get_report_analysis(db: AsyncSession, report_id: int, user_id: int, redis: Any = None) -> dict[str, Any]:
    """Latest safety analysis state for the user a report was filed against (reporter only).

    Status is "none" when no analysis was ever scheduled (or its record expired).
    """
    report = await db.get(Report, report_id)
    if report is None:
        raise NotFound("Report not found", resource="report", resource_id=report_id)
    if report.reporter_id != user_id:
        raise Unauthorized("Not your report", resource="report", resource_id=report_id)
    redis = redis if redis is not None else await get_redis()
    stored = await analysis_store.get_status(redis, report.reported_user_id)
    return stored or {"user_id": report.reported_user_id, "status": "none"}
