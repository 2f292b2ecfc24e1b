"""Bounded retry with exponential backoff for fallible remote calls."""

from __future__ import annotations

import functools
import random
import time
from typing import Callable, ParamSpec, TypeVar

from loguru import logger

T = TypeVar("T")
P = ParamSpec("P")


def backoff_delay(attempt_index: int, initial_delay: float, *, jitter: float = 0.0) -> float:
    """Return the sleep before retrying after the ``attempt_index``-th failure."""

    delay = initial_delay * (2**attempt_index)
    if jitter > 0:
        delay += random.uniform(0.0, jitter)
    return delay


def with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int,
    initial_delay: float,
    retry_if: Callable[[Exception], bool] | None = None,
    jitter: float = 0.0,
    deadline: float | None = None,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` are spent.

    The wrapper knows nothing about why a call failed. ``retry_if`` lets callers
    stop early for errors that a retry cannot fix, and ``deadline`` bounds the
    total wall time spent across attempts; in both cases, as after the final
    attempt, the last error propagates unchanged.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    started = clock()
    for attempt_index in range(max_attempts):
        try:
            return operation()
        except Exception as exc:
            remaining = max_attempts - attempt_index - 1
            if remaining == 0:
                logger.warning(
                    "{} failed after {} attempt(s): {}", label, max_attempts, exc
                )
                raise
            if retry_if is not None and not retry_if(exc):
                logger.debug("{} failed with non-retryable error: {}", label, exc)
                raise
            delay = backoff_delay(attempt_index, initial_delay, jitter=jitter)
            if deadline is not None and clock() - started + delay > deadline:
                logger.warning(
                    "{} abandoned after {} attempt(s); deadline {}s reached: {}",
                    label,
                    attempt_index + 1,
                    deadline,
                    exc,
                )
                raise
            logger.warning(
                "{} failed (attempt {}/{}); retrying in {:.2f}s: {}",
                label,
                attempt_index + 1,
                max_attempts,
                delay,
                exc,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


def retrying(
    *,
    max_attempts: int,
    initial_delay: float,
    retry_if: Callable[[Exception], bool] | None = None,
    jitter: float = 0.0,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator form of :func:`with_retry`."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return with_retry(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                initial_delay=initial_delay,
                retry_if=retry_if,
                jitter=jitter,
                label=func.__qualname__,
            )

        return wrapper

    return decorator


__all__ = ["backoff_delay", "retrying", "with_retry"]
