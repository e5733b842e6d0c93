from __future__ import annotations

from datetime import datetime
from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from potd.db.base import Base
from potd.models.subscriber import _utcnow


class ProblemList(Base):
    __tablename__ = "problem_lists"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)  # e.g. "basic", "advanced-kit"
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    problems: Mapped[list["Problem"]] = relationship("Problem", back_populates="problem_list")
    subscriptions: Mapped[list["Subscription"]] = relationship("Subscription", back_populates="problem_list")
