from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FixtureCacheRow(Base):
    __tablename__ = "fixture_cache"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    participant_a: Mapped[str] = mapped_column(String, nullable=False)
    participant_b: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, index=True)
    league: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[str | None] = mapped_column(String(16), nullable=True)
    time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    quick_odds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    quick_prediction: Mapped[str | None] = mapped_column(String, nullable=True)
    cached_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )


class AnalysisCacheRow(Base):
    __tablename__ = "analysis_cache"

    entity_id: Mapped[str] = mapped_column(String, primary_key=True)
    artifact: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
