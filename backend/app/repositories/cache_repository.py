"""SQLAlchemy-backed remote store (SQLite locally, Supabase Postgres in production)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.db import session_scope
from app.models import AnalysisCacheRow, FixtureCacheRow


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_cached_at(value: Any) -> datetime:
    if isinstance(value, datetime):
        return _utc(value)
    if isinstance(value, str):
        try:
            return _utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


class SqlCacheStore:
    """Encapsulate fixture and analysis cache persistence."""

    name = "sql"

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Analyses

    def get_analysis(self, entity_id: str) -> Mapping[str, Any] | None:
        with session_scope(self._session_factory) as session:
            row = session.get(AnalysisCacheRow, entity_id)
            if row is None:
                return None
            return dict(row.artifact) if isinstance(row.artifact, Mapping) else None

    def put_analysis(
        self, entity_id: str, artifact: Mapping[str, Any], updated_at: datetime
    ) -> None:
        with session_scope(self._session_factory) as session:
            existing = session.get(AnalysisCacheRow, entity_id)
            if existing is None:
                existing = AnalysisCacheRow(entity_id=entity_id)
                session.add(existing)
            existing.artifact = dict(artifact)
            existing.updated_at = _utc(updated_at)

    # ------------------------------------------------------------------
    # Fixtures

    def get_fixtures(
        self, category: str | None, cached_since: datetime
    ) -> list[dict[str, Any]]:
        query = select(FixtureCacheRow).where(FixtureCacheRow.cached_at >= _utc(cached_since))
        if category:
            query = query.where(FixtureCacheRow.category == category)
        with session_scope(self._session_factory) as session:
            rows = session.execute(query).scalars().all()
            return [
                {
                    "id": row.id,
                    "participant_a": row.participant_a,
                    "participant_b": row.participant_b,
                    "category": row.category,
                    "league": row.league,
                    "date": row.date,
                    "time": row.time,
                    "quick_odds": row.quick_odds,
                    "quick_prediction": row.quick_prediction,
                }
                for row in rows
            ]

    def put_fixtures(self, rows: Sequence[Mapping[str, Any]]) -> None:
        with session_scope(self._session_factory) as session:
            for row in rows:
                existing = session.get(FixtureCacheRow, row["id"])
                if existing is None:
                    existing = FixtureCacheRow(id=row["id"])
                    session.add(existing)
                existing.participant_a = row.get("participant_a") or ""
                existing.participant_b = row.get("participant_b") or ""
                existing.category = row.get("category") or "other"
                existing.league = row.get("league")
                existing.date = row.get("date")
                existing.time = row.get("time")
                existing.quick_odds = float(row.get("quick_odds") or 0.0)
                existing.quick_prediction = row.get("quick_prediction")
                existing.cached_at = _parse_cached_at(row.get("cached_at"))


__all__ = ["SqlCacheStore"]
