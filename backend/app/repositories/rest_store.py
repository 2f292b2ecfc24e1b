"""Supabase PostgREST-backed remote store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import httpx
from loguru import logger

FIXTURE_TABLE = "fixture_cache"
ANALYSIS_TABLE = "analysis_cache"
_UPSERT_PREFER = "resolution=merge-duplicates,return=minimal"


def _isoformat_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class SupabaseRestStore:
    """Thin wrapper around the Supabase REST endpoints for the cache tables."""

    name = "supabase-rest"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "x-application-name": "betmind-ai",
        }
        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def _get_rows(self, table: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        logger.debug("Supabase GET {} params={}", table, dict(params))
        response = self.client.get(f"/{table}", params=dict(params))
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            return []
        return [row for row in payload if isinstance(row, dict)]

    def _upsert(self, table: str, rows: Sequence[Mapping[str, Any]], conflict: str) -> None:
        logger.debug("Supabase UPSERT {} rows={}", table, len(rows))
        response = self.client.post(
            f"/{table}",
            params={"on_conflict": conflict},
            json=[dict(row) for row in rows],
            headers={"Prefer": _UPSERT_PREFER},
        )
        response.raise_for_status()

    def get_analysis(self, entity_id: str) -> Mapping[str, Any] | None:
        rows = self._get_rows(
            ANALYSIS_TABLE,
            {"select": "artifact", "entity_id": f"eq.{entity_id}", "limit": 1},
        )
        if not rows:
            return None
        artifact = rows[0].get("artifact")
        return artifact if isinstance(artifact, Mapping) else None

    def put_analysis(
        self, entity_id: str, artifact: Mapping[str, Any], updated_at: datetime
    ) -> None:
        self._upsert(
            ANALYSIS_TABLE,
            [
                {
                    "entity_id": entity_id,
                    "artifact": dict(artifact),
                    "updated_at": _isoformat_utc(updated_at),
                }
            ],
            conflict="entity_id",
        )

    def get_fixtures(
        self, category: str | None, cached_since: datetime
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "select": "*",
            "cached_at": f"gte.{_isoformat_utc(cached_since)}",
        }
        if category:
            params["category"] = f"eq.{category}"
        return self._get_rows(FIXTURE_TABLE, params)

    def put_fixtures(self, rows: Sequence[Mapping[str, Any]]) -> None:
        if not rows:
            return
        self._upsert(FIXTURE_TABLE, rows, conflict="id")

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SupabaseRestStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ANALYSIS_TABLE", "FIXTURE_TABLE", "SupabaseRestStore"]
