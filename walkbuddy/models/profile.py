"""Profile model: a user's trust standing (identity comes from the auth service)."""
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from walkbuddy.models.base import Base

MAX_TRUST_SCORE = 100


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("trust_score >= 0 AND trust_score <= 100", name="ck_profiles_trust_score_range"),
    )

    # Same id as the auth service's user; not generated here
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="User")
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False, default=MAX_TRUST_SCORE)
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
