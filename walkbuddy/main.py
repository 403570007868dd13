import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import redis.asyncio as aioredis

from walkbuddy.api.health import router as health_router
from walkbuddy.api.matches import router as matches_router
from walkbuddy.api.reports import router as reports_router
from walkbuddy.api.walk_requests import router as walk_requests_router
from walkbuddy.api.ws import router as ws_router
from walkbuddy.config import settings
from walkbuddy.database import engine
from walkbuddy.errors import Conflict, InvalidState, NotFound, Unauthorized, UpstreamUnavailable, WalkBuddyError
from walkbuddy.logging_config import configure_logging
from walkbuddy.models import Base
from walkbuddy.redis_client import set_redis
from walkbuddy.services.safety import safety_runner
from walkbuddy.tasks.expire_requests import run_sweep_loop

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[WalkBuddyError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    InvalidState: status.HTTP_409_CONFLICT,
    Conflict: status.HTTP_409_CONFLICT,
    UpstreamUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    async with engine.begin() as conn:
        if settings.RESET_DB:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    redis_client = aioredis.from_url(settings.REDIS_URL)
    set_redis(redis_client)
    task = asyncio.create_task(run_sweep_loop())
    logger.info("WalkBuddy started (sweep every %ss)", settings.SWEEP_INTERVAL_SECONDS)
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await safety_runner.wait_idle()
        set_redis(None)
        await redis_client.aclose()
        await engine.dispose()


app = FastAPI(title="WalkBuddy", version="0.1.0", lifespan=lifespan)


@app.exception_handler(WalkBuddyError)
async def walkbuddy_error_handler(request: Request, exc: WalkBuddyError):
    code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content=exc.to_dict())


app.include_router(health_router, prefix="/api")
app.include_router(walk_requests_router, prefix="/api")
app.include_router(matches_router, prefix="/api")
app.include_router(reports_router, prefix="/api")
app.include_router(ws_router)


@app.get("/api")
def api_root():
    return {"message": "WalkBuddy API"}
