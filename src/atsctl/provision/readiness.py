"""Bounded readiness polling."""
from __future__ import annotations

import time
from collections.abc import Callable

from .models import Readiness


def wait_for_ready(
    check: Callable[[], bool],
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.perf_counter,
) -> Readiness:
    """Call *check* until it succeeds, at most *attempts* times.

    Sleeps *interval* seconds between attempts; never after the last one.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    start = clock()
    for attempt in range(1, attempts + 1):
        if check():
            return Readiness(
                ready=True,
                attempts=attempt,
                max_attempts=attempts,
                elapsed_ms=int((clock() - start) * 1000),
            )
        if attempt < attempts:
            sleep(interval)
    return Readiness(
        ready=False,
        attempts=attempts,
        max_attempts=attempts,
        elapsed_ms=int((clock() - start) * 1000),
    )


__all__ = ["wait_for_ready"]
