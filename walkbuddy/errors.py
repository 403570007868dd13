"""Error kinds raised by the matching core.

Every error carries a human-readable message plus the resource it concerns, so
callers (the HTTP layer, background tasks) can report precisely what failed.
"""
import functools
from typing import Any

import redis.exceptions
from anthropic import APIConnectionError
from sqlalchemy.exc import OperationalError


class WalkBuddyError(Exception):
    """Base class. `resource`/`resource_id` identify what the error is about."""

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        resource_id: Any = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.resource_id = resource_id
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": type(self).__name__, "detail": self.message}
        if self.resource is not None:
            data["resource"] = self.resource
        if self.resource_id is not None:
            data["resource_id"] = self.resource_id
        data.update({k: v for k, v in self.context.items() if v is not None})
        return data


class NotFound(WalkBuddyError):
    pass


class Unauthorized(WalkBuddyError):
    pass


class InvalidState(WalkBuddyError):
    """Transition not allowed from the current state."""

    def __init__(self, message: str, resource: str | None = None, resource_id: Any = None,
                 from_state: str | None = None, to_state: str | None = None, **context: Any) -> None:
        super().__init__(message, resource, resource_id, from_state=from_state, to_state=to_state, **context)
        self.from_state = from_state
        self.to_state = to_state


class Conflict(WalkBuddyError):
    """Lost a race on a conditional transition; retrying may succeed."""


class UpstreamUnavailable(WalkBuddyError):
    """Store, cache or remote API unreachable; retry with backoff."""


_UPSTREAM_ERRORS = (OperationalError, redis.exceptions.ConnectionError, APIConnectionError)


def translate_upstream_errors(fn):
    """Re-raise driver/transport outages from an async service call as UpstreamUnavailable."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except _UPSTREAM_ERRORS as e:
            raise UpstreamUnavailable(f"{fn.__name__}: upstream unavailable ({type(e).__name__})") from e

    return wrapper
