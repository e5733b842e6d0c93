from __future__ import annotations

from datetime import datetime
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from potd.db.base import Base
from potd.models.subscriber import _utcnow


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "problem_list_id", name="uq_subscription_subscriber_list"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    problem_list_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("problem_lists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    frequency: Mapped[str] = mapped_column(String(8), nullable=False)  # "2x" | "3x" | "5x"
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    resubscribe_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_resubscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_unsubscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    subscriber: Mapped["Subscriber"] = relationship("Subscriber", back_populates="subscriptions")
    problem_list: Mapped["ProblemList"] = relationship("ProblemList", back_populates="subscriptions")
    progress: Mapped["SubscriptionProgress | None"] = relationship(
        "SubscriptionProgress", back_populates="subscription", uselist=False, cascade="all, delete-orphan"
    )
    deliveries: Mapped[list["Delivery"]] = relationship(
        "Delivery", back_populates="subscription", cascade="all, delete-orphan"
    )
