from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from finbuddy.db.base import Base


class LatestNews(Base):
    __tablename__ = "latest_news"
    __table_args__ = (
        CheckConstraint("length(trim(headline)) > 0", name="chk_headline_not_empty"),
        CheckConstraint("source IS NULL OR length(trim(source)) > 0", name="chk_source_not_empty"),
        Index("idx_latest_news_created_at", "created_at"),
        Index("idx_latest_news_published_at", "published_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
