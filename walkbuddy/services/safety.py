"""Safety analysis of repeatedly reported users.

Reports trigger the analysis without waiting for it: `SafetyAnalysisRunner.submit`
schedules an asyncio task and returns immediately. The task records its
progress in Redis (see analysis_store); failures are logged and stored there,
never raised into the code path that submitted the report.
"""
import asyncio
import json
import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable, Literal

from anthropic import APIConnectionError, AsyncAnthropic, RateLimitError
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walkbuddy.config import settings
from walkbuddy.models.profile import Profile
from walkbuddy.models.report import Report
from walkbuddy.redis_client import get_redis
from walkbuddy.services import analysis_store

logger = logging.getLogger(__name__)

PROMPT = (
    "You are a safety analyst for a campus walking app. Analyze these reports and "
    "determine if this user should be banned. Respond ONLY with valid JSON: "
    "{{\"risk\": \"low\"|\"medium\"|\"high\", \"shouldBan\": boolean, \"reasoning\": string, "
    "\"patterns\": string[]}}\n\nReports:\n{reports}"
)


class SafetyAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    risk: Literal["low", "medium", "high"]
    should_ban: bool = Field(alias="shouldBan")
    reasoning: str
    patterns: list[str] = Field(default_factory=list)


class AnalysisSkipped(Exception):
    """No analyzer configured (e.g. missing API key)."""


Analyzer = Callable[[list[dict[str, Any]]], Awaitable[SafetyAnalysis]]


def _extract_json(text: str) -> str:
    """Model replies sometimes wrap the JSON object in prose or code fences."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start : end + 1]


@lru_cache
def get_anthropic_client() -> AsyncAnthropic:
    """Cached SDK client built from settings (retries transient failures itself)."""
    return AsyncAnthropic(
        api_key=settings.ANTHROPIC_API_KEY,
        base_url=settings.ANTHROPIC_BASE_URL,
        timeout=settings.ANTHROPIC_TIMEOUT_SECONDS,
        max_retries=settings.ANTHROPIC_MAX_RETRIES,
    )


async def anthropic_analyzer(
    reports: list[dict[str, Any]],
    client: AsyncAnthropic | None = None,
) -> SafetyAnalysis:
    """Ask Claude to assess a batch of reports."""
    if not settings.ANTHROPIC_API_KEY:
        raise AnalysisSkipped("ANTHROPIC_API_KEY not set")
    client = client or get_anthropic_client()
    try:
        message = await client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=1024,
            messages=[{"role": "user", "content": PROMPT.format(reports=json.dumps(reports, indent=2))}],
        )
    except (APIConnectionError, RateLimitError) as e:
        logger.error("Safety analysis call failed after retries: %s: %s", type(e).__name__, e)
        raise
    text = next((block.text for block in message.content if block.type == "text"), "")
    try:
        return SafetyAnalysis.model_validate_json(_extract_json(text))
    except ValidationError as e:
        raise ValueError(f"Invalid response from safety analysis: {text[:200]!r}") from e


async def recent_reports(db: AsyncSession, user_id: int, limit: int) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Report.reason, Report.details, Report.created_at)
        .where(Report.reported_user_id == user_id)
        .order_by(Report.created_at.desc(), Report.id.desc())
        .limit(limit)
    )
    return [
        {
            "reportNumber": i + 1,
            "reason": r.reason,
            "details": r.details,
            "date": r.created_at.date().isoformat() if r.created_at else None,
        }
        for i, r in enumerate(result.all())
    ]


async def ban_user(db: AsyncSession, user_id: int) -> None:
    await db.execute(update(Profile).where(Profile.id == user_id).values(is_banned=True, trust_score=0))


class SafetyAnalysisRunner:
    """Runs analyses as background tasks, one at a time per user."""

    def __init__(
        self,
        session_factory: async_sessionmaker | None = None,
        analyzer: Analyzer | None = None,
        redis: Any = None,
    ) -> None:
        self._session_factory = session_factory
        self._analyzer = analyzer or anthropic_analyzer
        self._redis = redis
        self._tasks: dict[int, asyncio.Task] = {}

    async def _get_redis(self) -> Any:
        return self._redis if self._redis is not None else await get_redis()

    def _sessions(self) -> async_sessionmaker:
        if self._session_factory is None:
            from walkbuddy.database import async_session

            self._session_factory = async_session
        return self._session_factory

    def submit(self, user_id: int) -> asyncio.Task:
        """Schedule an analysis for `user_id` and return without waiting."""
        running = self._tasks.get(user_id)
        if running is not None and not running.done():
            return running
        task = asyncio.create_task(self._run(user_id), name=f"safety-analysis-{user_id}")
        self._tasks[user_id] = task
        task.add_done_callback(lambda t, uid=user_id: self._finished(uid, t))
        return task

    def _finished(self, user_id: int, task: asyncio.Task) -> None:
        if self._tasks.get(user_id) is task:
            del self._tasks[user_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error("Safety analysis task for user %s crashed", user_id, exc_info=task.exception())

    async def wait_idle(self) -> None:
        """Wait for every scheduled analysis to finish (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def _record(self, user_id: int, status: str, **fields: Any) -> None:
        try:
            redis = await self._get_redis()
            await analysis_store.set_status(redis, user_id, status, **fields)
        except Exception:
            logger.exception("Could not record safety analysis status %s for user %s", status, user_id)

    async def _run(self, user_id: int) -> SafetyAnalysis | None:
        await self._record(user_id, analysis_store.PENDING)
        try:
            async with self._sessions()() as db:
                reports = await recent_reports(db, user_id, settings.SAFETY_REPORTS_ANALYZED)
                if len(reports) < settings.SAFETY_REPORT_THRESHOLD:
                    await self._record(user_id, analysis_store.SKIPPED, reason="not enough reports")
                    return None
                analysis = await self._analyzer(reports)
                if analysis.should_ban:
                    await ban_user(db, user_id)
                    await db.commit()
                    logger.warning("User %s banned after safety analysis (risk=%s)", user_id, analysis.risk)
        except AnalysisSkipped as e:
            logger.info("Safety analysis for user %s skipped: %s", user_id, e)
            await self._record(user_id, analysis_store.SKIPPED, reason=str(e))
            return None
        except Exception as e:
            logger.exception("Safety analysis for user %s failed", user_id)
            await self._record(user_id, analysis_store.FAILED, error=f"{type(e).__name__}: {e}")
            return None
        await self._record(user_id, analysis_store.DONE, analysis=analysis.model_dump())
        return analysis


safety_runner = SafetyAnalysisRunner()
