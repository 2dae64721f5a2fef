"""Data models for the provisioning pipeline."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exit_codes import ExitCode

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..providers import (
        AptProvider,
        NginxProvider,
        PostgresProvider,
        Runner,
        SystemdProvider,
        UfwProvider,
        VirtualenvProvider,
    )
    from .summary import HostSummary


class FailurePolicy(str, Enum):
    """What a failed stage means for the rest of the run."""

    ABORT = "abort"
    WARN = "warn"
    IGNORE = "ignore"


class StageOutcome(str, Enum):
    """Reconciliation outcome of a single stage."""

    SATISFIED = "satisfied"
    CHANGED = "changed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the outcome represents a failure."""
        return self is StageOutcome.FAILED


@dataclass(slots=True, frozen=True)
class StageResult:
    """Outcome of running a stage.

    Stage functions fill in the outcome, message and details; the engine stamps
    the identifying fields and the duration afterwards.
    """

    outcome: StageOutcome
    message: str
    data: Mapping[str, Any] | None = None
    warnings: Sequence[str] = field(default_factory=tuple)
    errors: Sequence[str] = field(default_factory=tuple)
    id: str = ""
    title: str = ""
    policy: FailurePolicy = FailurePolicy.ABORT
    duration_ms: int | None = None

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the stage failed."""
        return self.outcome.is_failure

    @property
    def changed(self) -> bool:
        """Return ``True`` when the stage mutated the host."""
        return self.outcome is StageOutcome.CHANGED


@dataclass(slots=True, frozen=True)
class Readiness:
    """Result of the bounded PostgreSQL readiness poll.

    Downstream stages consume this object instead of probing again.
    """

    ready: bool
    attempts: int
    max_attempts: int
    elapsed_ms: int


@dataclass(slots=True)
class ProvisionContext:
    """Providers and run state shared by the stages.

    ``pg_version``, ``readiness`` and ``host_summary`` are filled in by the
    stages that establish them.
    """

    config: AppConfig
    runner: Runner
    apt: AptProvider
    postgres: PostgresProvider
    systemd: SystemdProvider
    nginx: NginxProvider
    ufw: UfwProvider
    virtualenv: VirtualenvProvider
    sleep: Callable[[float], None]
    today: Callable[[], date]
    pg_version: str | None = None
    readiness: Readiness | None = None
    host_summary: HostSummary | None = None


@dataclass(slots=True, frozen=True)
class StageDefinition:
    """Metadata + callable for a stage."""

    id: str
    title: str
    policy: FailurePolicy
    run: Callable[[ProvisionContext], StageResult]


@dataclass(slots=True, frozen=True)
class ProvisionSummary:
    """Aggregated view of a provisioning run."""

    status: str
    aborted_by: str | None
    exit_code: int
    totals: Mapping[StageOutcome, int]
    changed: int

    @property
    def aborted(self) -> bool:
        """Return ``True`` when a stage stopped the run."""
        return self.aborted_by is not None


@dataclass(slots=True, frozen=True)
class ProvisionReport:
    """Complete report for a provisioning run."""

    results: Sequence[StageResult]
    summary: ProvisionSummary
    metadata: Mapping[str, Any] | None = None


def summarize(results: Iterable[StageResult], aborted_by: str | None) -> ProvisionSummary:
    """Compute the overall status and exit code for *results*."""
    totals: dict[StageOutcome, int] = {outcome: 0 for outcome in StageOutcome}
    changed = 0
    has_failure = False
    for result in results:
        totals[result.outcome] += 1
        if result.changed:
            changed += 1
        if result.is_failure and result.policy is FailurePolicy.WARN:
            has_failure = True

    if aborted_by is not None:
        status = "aborted"
        exit_code = int(ExitCode.PROVIDER)
    elif has_failure:
        status = "warning"
        exit_code = int(ExitCode.OK)
    else:
        status = "success"
        exit_code = int(ExitCode.OK)
    return ProvisionSummary(
        status=status,
        aborted_by=aborted_by,
        exit_code=exit_code,
        totals=totals,
        changed=changed,
    )


def build_report(
    results: Sequence[StageResult],
    *,
    aborted_by: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> ProvisionReport:
    """Create a full ProvisionReport from stage results."""
    summary = summarize(results, aborted_by)
    return ProvisionReport(results=tuple(results), summary=summary, metadata=metadata)
