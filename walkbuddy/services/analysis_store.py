"""Safety analysis status per reported user, kept in Redis (TTL) for polling."""
import json
from datetime import datetime, timezone
from typing import Any

from walkbuddy.config import settings

PENDING = "pending"
DONE = "done"
SKIPPED = "skipped"
FAILED = "failed"


def _key(user_id: int) -> str:
    return f"safety:{user_id}:analysis"


async def set_status(redis: Any, user_id: int, status: str, **fields: Any) -> None:
    """Overwrite the stored state for `user_id`; extra fields (analysis, error) are stored alongside."""
    data = {"user_id": user_id, "status": status, "updated_at": datetime.now(timezone.utc).isoformat(), **fields}
    await redis.setex(_key(user_id), settings.SAFETY_ANALYSIS_TTL_SECONDS, json.dumps(data))


async def get_status(redis: Any, user_id: int) -> dict[str, Any] | None:
    raw = await redis.get(_key(user_id))
    if not raw:
        return None
    return json.loads(raw)
