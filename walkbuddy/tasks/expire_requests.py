"""Periodically expire overdue walk requests and retry matching for the rest."""
import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from walkbuddy.config import settings
from walkbuddy.database import async_session
from walkbuddy.services.clock import utcnow
from walkbuddy.services.walk_requests import retry_waiting, sweep_expired

logger = logging.getLogger(__name__)


async def run_sweep_once(session_factory: async_sessionmaker = async_session) -> tuple[int, int]:
    """One pass: (expired, newly matched)."""
    now = utcnow()
    async with session_factory() as db:
        expired = await sweep_expired(db, now)
        matched = await retry_waiting(db, now) if settings.SWEEP_RETRY_MATCHES else 0
    return expired, matched


async def run_sweep_loop(interval_seconds: int | None = None) -> None:
    interval = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
    while True:
        try:
            await run_sweep_once()
        except Exception:
            logger.exception("Walk request sweep failed; retrying in %ss", interval)
        await asyncio.sleep(interval)
