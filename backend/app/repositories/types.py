"""Shared remote store contract."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence


class RemoteStore(Protocol):
    """Keyed best-effort cache for fixtures and analysis artifacts.

    Implementations raise whatever their transport raises; classification of
    failures is the gateway's concern.
    """

    name: str

    def get_analysis(self, entity_id: str) -> Mapping[str, Any] | None:
        """Return the stored artifact payload or ``None`` when absent."""

    def put_analysis(
        self, entity_id: str, artifact: Mapping[str, Any], updated_at: datetime
    ) -> None:
        """Upsert the artifact keyed by ``entity_id``."""

    def get_fixtures(
        self, category: str | None, cached_since: datetime
    ) -> list[dict[str, Any]]:
        """Return fixture rows cached at or after ``cached_since``."""

    def put_fixtures(self, rows: Sequence[Mapping[str, Any]]) -> None:
        """Upsert fixture rows keyed by ``id``."""


__all__ = ["RemoteStore"]
