"""Remote store implementations backing the cache gateway."""

from .cache_repository import SqlCacheStore
from .rest_store import SupabaseRestStore
from .types import RemoteStore

__all__ = [
    "RemoteStore",
    "SqlCacheStore",
    "SupabaseRestStore",
]
