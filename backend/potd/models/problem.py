from __future__ import annotations

from datetime import datetime
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from potd.db.base import Base
from potd.models.subscriber import _utcnow


class Problem(Base):
    __tablename__ = "problems"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    problem_list_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("problem_lists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source: Mapped[str | None] = mapped_column(String(32), nullable=True)  # "boj" | "leetcode"
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(512), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False)  # easy | medium | hard
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    week: Mapped[int | None] = mapped_column(Integer, nullable=True)  # ordering hint within the list
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    problem_list: Mapped["ProblemList"] = relationship("ProblemList", back_populates="problems")
