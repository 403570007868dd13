from walkbuddy.models.base import Base
from walkbuddy.models.match import Match, MatchStatus
from walkbuddy.models.profile import Profile
from walkbuddy.models.report import Report
from walkbuddy.models.walk_request import RequestStatus, WalkRequest

__all__ = ["Base", "Profile", "WalkRequest", "RequestStatus", "Match", "MatchStatus", "Report"]
