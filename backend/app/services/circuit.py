"""Process-lifetime circuit breaker for the remote cache store."""

from __future__ import annotations

import threading

from loguru import logger


class CircuitState:
    """Monotonic Online -> Offline flag.

    Once offline, the state stays offline until the process restarts. There is
    no reset operation.
    """

    def __init__(self, name: str = "remote-store") -> None:
        self.name = name
        self._offline = threading.Event()

    def mark_offline(self) -> None:
        if not self._offline.is_set():
            logger.warning("Circuit {} opened; remote calls disabled for this process", self.name)
        self._offline.set()

    def is_offline(self) -> bool:
        return self._offline.is_set()

    def __repr__(self) -> str:
        state = "offline" if self.is_offline() else "online"
        return f"CircuitState(name={self.name!r}, state={state})"


__all__ = ["CircuitState"]
