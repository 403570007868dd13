"""Match model: confirmed pairing of exactly two walk requests."""
import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, Float, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from walkbuddy.models.base import Base


class MatchStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (CheckConstraint("request_1_id != request_2_id", name="ck_matches_distinct_requests"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    request_1_id: Mapped[int] = mapped_column(
        ForeignKey("walk_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    request_2_id: Mapped[int] = mapped_column(
        ForeignKey("walk_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    meetup_lat: Mapped[float] = mapped_column(Float, nullable=False)
    meetup_lng: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[MatchStatus] = mapped_column(
        Enum(MatchStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MatchStatus.PENDING,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    request_1 = relationship("WalkRequest", foreign_keys=[request_1_id])
    request_2 = relationship("WalkRequest", foreign_keys=[request_2_id])

    @property
    def request_ids(self) -> tuple[int, int]:
        return self.request_1_id, self.request_2_id
