"""Read-through/write-through access to the remote cache behind a circuit breaker."""

from __future__ import annotations

import socket
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence, TypeVar

import httpx
from loguru import logger
from sqlalchemy import exc as sa_exc

from app.repositories import RemoteStore

from .circuit import CircuitState
from .retry import with_retry

T = TypeVar("T")

_NETWORK_MARKERS = (
    "failed to fetch",
    "network",
    "could not connect",
    "connection refused",
    "connection reset",
    "connection timed out",
    "timed out",
    "server closed the connection",
    "could not translate host name",
    "name or service not known",
    "temporary failure in name resolution",
)
_TRANSPORT_TYPES: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    sa_exc.DisconnectionError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)


def _message_suggests_network(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _NETWORK_MARKERS)


def is_network_error(exc: BaseException) -> bool:
    """Return True when ``exc`` signals the store is unreachable.

    Data and permission problems (HTTP status errors, SQL syntax, integrity,
    missing tables) are not connectivity failures and return False.
    """

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, _TRANSPORT_TYPES):
            return True
        if isinstance(current, httpx.HTTPStatusError):
            return False
        if isinstance(current, sa_exc.OperationalError):
            if current.connection_invalidated or _message_suggests_network(current.orig or current):
                return True
            return False
        if isinstance(current, (sa_exc.ProgrammingError, sa_exc.IntegrityError, sa_exc.DataError)):
            return False
        current = current.__cause__ or current.__context__
    return _message_suggests_network(exc)


class RemoteCacheGateway:
    """Best-effort cache client: failures degrade to misses, never to errors."""

    def __init__(
        self,
        store: RemoteStore | None,
        circuit: CircuitState,
        *,
        retry_attempts: int = 2,
        retry_delay: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._circuit = circuit
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep

    @property
    def circuit(self) -> CircuitState:
        return self._circuit

    @property
    def available(self) -> bool:
        return self._store is not None and not self._circuit.is_offline()

    def _call(self, label: str, operation: Callable[[RemoteStore], T], default: T) -> T:
        store = self._store
        if store is None:
            return default
        if self._circuit.is_offline():
            logger.debug("Remote store offline; skipping {}", label)
            return default
        try:
            return with_retry(
                lambda: operation(store),
                max_attempts=self._retry_attempts,
                initial_delay=self._retry_delay,
                retry_if=is_network_error,
                label=f"{store.name} {label}",
                sleep=self._sleep,
            )
        except Exception as exc:
            if is_network_error(exc):
                logger.warning("Remote store unreachable during {}; going offline: {}", label, exc)
                self._circuit.mark_offline()
            else:
                logger.warning("Remote store error during {} (treated as miss): {}", label, exc)
            return default

    def get_analysis(self, entity_id: str) -> dict[str, Any] | None:
        payload = self._call(
            f"get_analysis({entity_id})",
            lambda store: store.get_analysis(entity_id),
            None,
        )
        if payload is None:
            return None
        return dict(payload)

    def put_analysis(self, entity_id: str, artifact: Mapping[str, Any]) -> bool:
        updated_at = datetime.now(timezone.utc)

        def _write(store: RemoteStore) -> bool:
            store.put_analysis(entity_id, artifact, updated_at)
            return True

        stored = self._call(f"put_analysis({entity_id})", _write, False)
        if stored:
            logger.info("Analysis {} saved to remote cache", entity_id)
        return stored

    def get_fixtures(self, category: str | None, cached_since: datetime) -> list[dict[str, Any]]:
        return self._call(
            f"get_fixtures({category or 'all'})",
            lambda store: store.get_fixtures(category, cached_since),
            [],
        )

    def put_fixtures(self, rows: Sequence[Mapping[str, Any]]) -> bool:
        if not rows:
            return False

        def _write(store: RemoteStore) -> bool:
            store.put_fixtures(rows)
            return True

        stored = self._call(f"put_fixtures({len(rows)} rows)", _write, False)
        if stored:
            logger.info("Saved {} fixtures to remote cache", len(rows))
        return stored


class BackgroundWriter:
    """Detached task submission for fire-and-forget cache writes.

    Failures are reported through the done-callback and logged; they never reach
    the submitting request.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="cache-writer"
        )
        self._pending: set[Future[Any]] = set()
        self._lock = threading.Lock()

    def submit(self, label: str, func: Callable[..., Any], *args: Any) -> Future[Any]:
        future = self._executor.submit(func, *args)
        with self._lock:
            self._pending.add(future)

        def _done(completed: Future[Any]) -> None:
            with self._lock:
                self._pending.discard(completed)
            error = completed.exception()
            if error is not None:
                logger.opt(exception=error).error("Background write {} failed", label)

        future.add_done_callback(_done)
        return future

    def drain(self, timeout: float | None = None) -> None:
        """Block until every submitted write has finished."""

        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


__all__ = ["BackgroundWriter", "RemoteCacheGateway", "is_network_error"]
