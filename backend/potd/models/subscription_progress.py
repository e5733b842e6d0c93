from __future__ import annotations

from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from potd.db.base import Base
from potd.models.subscriber import _utcnow


class SubscriptionProgress(Base):
    __tablename__ = "subscription_progress"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    # Index of the next problem to send; only ever incremented by one after a confirmed send
    current_problem_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_problems_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    subscription: Mapped["Subscription"] = relationship("Subscription", back_populates="progress")
