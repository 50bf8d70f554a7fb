"""PrizeRequest ORM model."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ReviewStatus(str, Enum):
    """Lifecycle shared by prize requests and goal submissions."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class PrizeRequest(Base):
    __tablename__ = "prize_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id"), nullable=False, index=True
    )
    prize_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prizes.id"), nullable=False
    )
    class_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("classes.id"), nullable=False, index=True
    )
    prize_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    custom_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ReviewStatus.PENDING.value
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id"), nullable=True
    )
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    prize: Mapped["Prize"] = relationship("Prize")

    @property
    def effective_amount(self) -> int:
        """Amount debited at request time (and refunded on denial)."""
        if self.custom_amount is not None:
            return self.custom_amount
        return self.prize_cost
