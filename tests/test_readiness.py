"""Tests for the bounded readiness poll."""
from __future__ import annotations

import pytest

from atsctl.provision.readiness import wait_for_ready


def test_returns_on_first_success() -> None:
    """Polling stops as soon as the check passes."""
    answers = iter([False, False, True, True])
    sleeps: list[float] = []

    readiness = wait_for_ready(
        lambda: next(answers),
        attempts=60,
        interval=1.0,
        sleep=sleeps.append,
    )

    assert readiness.ready is True
    assert readiness.attempts == 3
    assert readiness.max_attempts == 60
    assert sleeps == [1.0, 1.0]


def test_gives_up_after_max_attempts() -> None:
    """The check runs at most ``attempts`` times and never sleeps after the last."""
    checks: list[int] = []
    sleeps: list[float] = []

    def check() -> bool:
        checks.append(1)
        return False

    readiness = wait_for_ready(check, attempts=5, interval=0.5, sleep=sleeps.append)

    assert readiness.ready is False
    assert readiness.attempts == 5
    assert len(checks) == 5
    assert sleeps == [0.5] * 4


def test_elapsed_uses_clock() -> None:
    """Elapsed time is measured with the injected clock."""
    ticks = iter([10.0, 10.25])

    readiness = wait_for_ready(
        lambda: True,
        attempts=1,
        interval=1.0,
        sleep=lambda _: None,
        clock=lambda: next(ticks),
    )

    assert readiness.elapsed_ms == 250


def test_rejects_zero_attempts() -> None:
    """At least one attempt is required."""
    with pytest.raises(ValueError):
        wait_for_ready(lambda: True, attempts=0, interval=1.0)
