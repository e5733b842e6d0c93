"""Per-(subscription, day) send record; status=sent blocks any further send that day."""

from __future__ import annotations

from datetime import date, datetime
from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from potd.db.base import Base
from potd.models.subscriber import _utcnow


class Delivery(Base):
    __tablename__ = "deliveries"
    __table_args__ = (
        UniqueConstraint("subscription_id", "send_date", name="uq_delivery_subscription_date"),
        CheckConstraint("status IN ('queued', 'sent', 'failed')", name="ck_delivery_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subscription_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    problem_list_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("problem_lists.id", ondelete="CASCADE"), nullable=False
    )
    problem_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("problems.id", ondelete="SET NULL"), nullable=True
    )
    send_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # queued | sent | failed
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    subscription: Mapped["Subscription"] = relationship("Subscription", back_populates="deliveries")
