"""Stage execution harness for the provision command."""

from __future__ import annotations

import time
import traceback
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import date

from ..config import AppConfig
from ..providers import (
    AptProvider,
    NginxProvider,
    PostgresProvider,
    Runner,
    SystemdProvider,
    UfwProvider,
    VirtualenvProvider,
    run_command,
)
from ..templates import TemplateEngine
from .models import (
    FailurePolicy,
    ProvisionContext,
    ProvisionReport,
    StageDefinition,
    StageOutcome,
    StageResult,
    build_report,
)

StageCallback = Callable[[StageDefinition], None]
ResultCallback = Callable[[StageDefinition, StageResult], None]


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _coerce_result(
    stage: StageDefinition,
    result: StageResult,
    duration_ms: int,
) -> StageResult:
    coerced = result
    if result.id != stage.id:
        coerced = replace(coerced, id=stage.id)
    if result.title != stage.title:
        coerced = replace(coerced, title=stage.title)
    if result.policy is not stage.policy:
        coerced = replace(coerced, policy=stage.policy)
    if result.duration_ms is None:
        coerced = replace(coerced, duration_ms=duration_ms)
    return coerced


def _unexpected_failure(
    stage: StageDefinition,
    exc: Exception,
    duration_ms: int,
) -> StageResult:
    return StageResult(
        outcome=StageOutcome.FAILED,
        message=f"{stage.title} failed: {exc}",
        data={
            "exception": repr(exc),
            "traceback": traceback.format_exc(),
        },
        errors=(str(exc),),
        id=stage.id,
        title=stage.title,
        policy=stage.policy,
        duration_ms=duration_ms,
    )


def _run_single_stage(stage: StageDefinition, context: ProvisionContext) -> StageResult:
    start = time.perf_counter()
    try:
        result = stage.run(context)
    except Exception as exc:
        return _unexpected_failure(stage, exc, _duration_ms(start))
    return _coerce_result(stage, result, _duration_ms(start))


def create_provision_context(
    config: AppConfig,
    *,
    templates: TemplateEngine,
    runner: Runner = run_command,
    sleep: Callable[[float], None] = time.sleep,
    today: Callable[[], date] = date.today,
) -> ProvisionContext:
    """Build a ProvisionContext with providers wired from *config*."""
    return ProvisionContext(
        config=config,
        runner=runner,
        apt=AptProvider(runner=runner),
        postgres=PostgresProvider(runner=runner),
        systemd=SystemdProvider(
            templates=templates,
            runner=runner,
            systemd_dir=config.backend.unit_dir,
            systemctl_bin=config.systemd.systemctl_bin,
        ),
        nginx=NginxProvider(
            templates=templates,
            site_name=config.nginx.site_name,
            runner=runner,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
            nginx_bin=config.nginx.nginx_bin,
        ),
        ufw=UfwProvider(runner=runner, ufw_bin=config.firewall.ufw_bin),
        virtualenv=VirtualenvProvider(runner=runner, python_bin=config.backend.python_bin),
        sleep=sleep,
        today=today,
    )


class ProvisionEngine:
    """Coordinator that runs stages in order and applies failure policies."""

    def __init__(self, context: ProvisionContext) -> None:
        """Store the shared provisioning context."""
        self._context = context

    @property
    def context(self) -> ProvisionContext:
        """Return the context handed to every stage."""
        return self._context

    def run(
        self,
        stages: Sequence[StageDefinition],
        *,
        metadata: Mapping[str, object] | None = None,
        on_start: StageCallback | None = None,
        on_result: ResultCallback | None = None,
    ) -> ProvisionReport:
        """Run *stages* sequentially, stopping at the first aborting failure."""
        start = time.perf_counter()
        results: list[StageResult] = []
        aborted_by: str | None = None
        for stage in stages:
            if on_start is not None:
                on_start(stage)
            result = _run_single_stage(stage, self._context)
            results.append(result)
            if on_result is not None:
                on_result(stage, result)
            if result.is_failure and stage.policy is FailurePolicy.ABORT:
                aborted_by = stage.id
                break

        run_metadata: dict[str, object] = {
            "duration_ms": _duration_ms(start),
            "stage_count": len(results),
            "requested_stages": len(stages),
        }
        if metadata:
            run_metadata.update(metadata)
        return build_report(results, aborted_by=aborted_by, metadata=run_metadata)


__all__ = ["ProvisionEngine", "create_provision_context"]
