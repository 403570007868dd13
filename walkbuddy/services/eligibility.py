"""Which waiting requests may be matched with a given requester.

Pure functions over a snapshot: nothing here reads or writes the store. The
requester's own trust score is deliberately not checked (that happens at
intake); only the candidate's owner must be trustworthy.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from walkbuddy.config import settings
from walkbuddy.services.clock import ensure_utc
from walkbuddy.services.geo import distance


class HasRoute(Protocol):
    id: int
    user_id: int
    start_lat: float
    start_lng: float
    dest_lat: float
    dest_lng: float


@dataclass(frozen=True)
class Candidate:
    """A waiting request joined with its owner's trust fields."""
    request_id: int
    user_id: int
    start_lat: float
    start_lng: float
    dest_lat: float
    dest_lng: float
    created_at: datetime
    expires_at: datetime
    trust_score: int
    is_banned: bool


def start_distance(requester: HasRoute, c: Candidate) -> float:
    return distance(requester.start_lat, requester.start_lng, c.start_lat, c.start_lng)


def dest_distance(requester: HasRoute, c: Candidate) -> float:
    return distance(requester.dest_lat, requester.dest_lng, c.dest_lat, c.dest_lng)


def is_eligible(
    requester: HasRoute,
    c: Candidate,
    now: datetime,
    start_radius_miles: float | None = None,
    dest_radius_miles: float | None = None,
    min_trust_score: int | None = None,
) -> bool:
    """True if `c` is a legal match for `requester` at `now`. Radii are inclusive, trust is exclusive."""
    start_radius = settings.MATCH_START_RADIUS_MILES if start_radius_miles is None else start_radius_miles
    dest_radius = settings.MATCH_DEST_RADIUS_MILES if dest_radius_miles is None else dest_radius_miles
    min_trust = settings.MIN_TRUST_SCORE if min_trust_score is None else min_trust_score

    if c.request_id == requester.id or c.user_id == requester.user_id:
        return False
    if c.is_banned or c.trust_score <= min_trust:
        return False
    if ensure_utc(c.expires_at) <= ensure_utc(now):
        return False
    if start_distance(requester, c) > start_radius:
        return False
    return dest_distance(requester, c) <= dest_radius


def eligible_candidates(
    requester: HasRoute,
    pool: Iterable[Candidate],
    now: datetime,
    **thresholds,
) -> list[Candidate]:
    """Subset of `pool` that passes is_eligible, in pool order."""
    return [c for c in pool if is_eligible(requester, c, now, **thresholds)]
