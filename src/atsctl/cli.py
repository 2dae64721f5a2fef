"""Typer-powered command line for ``atsctl``.

``atsctl provision`` walks the ordered provisioning stages against the local
host, ``atsctl status`` prints the read-only host summary and ``atsctl config
show`` renders the effective configuration. Every command runs inside a
structured logging scope.
"""
from __future__ import annotations

import json
import os
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .locking import LockManager, LockTimeoutError
from .logging import OperationScope, StructuredLogger
from .provision import (
    HostSummary,
    ProvisionEngine,
    ProvisionReport,
    StageDefinition,
    StageOutcome,
    StageResult,
    collect_stages,
    collect_summary,
    create_provision_context,
)
from .templates import TemplateEngine

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to atsctl's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit machine-readable JSON instead of human output.",
)

_OUTCOME_STYLE = {
    StageOutcome.SATISFIED: "[green]OK[/green]",
    StageOutcome.CHANGED: "[cyan]CHANGED[/cyan]",
    StageOutcome.SKIPPED: "[yellow]SKIPPED[/yellow]",
    StageOutcome.FAILED: "[red]FAILED[/red]",
}

# Stage outcomes as recorded in operation steps.
_STEP_STATUS = {
    StageOutcome.SATISFIED: "success",
    StageOutcome.CHANGED: "success",
    StageOutcome.SKIPPED: "skipped",
    StageOutcome.FAILED: "error",
}

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Elden ATS host provisioner.

        Installs packages, prepares PostgreSQL, nginx, the backend service and
        the firewall on a fresh Ubuntu VM. Safe to re-run.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect global configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    *,
    reload: bool = False,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext) and not reload:
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=int(ExitCode.VALIDATION)) from exc

    if isinstance(runtime, RuntimeContext):
        runtime.logger.close()
    runtime = RuntimeContext(
        config=config,
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
        templates=TemplateEngine.with_overrides(config.templates_dir),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


def _is_root() -> bool:
    return os.geteuid() == 0


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the atsctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"atsctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = 2,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _sanitize_payload(value: object) -> object:
    """Sanitise report payload values for JSON/log contexts."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize_payload(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_sanitize_payload(item) for item in value]
    return str(value)


def _serialize_result(result: StageResult) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": result.id,
        "title": result.title,
        "policy": result.policy.value,
        "outcome": result.outcome.value,
        "message": result.message,
    }
    if result.duration_ms is not None:
        payload["duration_ms"] = result.duration_ms
    if result.data:
        payload["data"] = _sanitize_payload(result.data)
    if result.warnings:
        payload["warnings"] = list(result.warnings)
    if result.errors:
        payload["errors"] = list(result.errors)
    return payload


def _serialize_provision_report(report: ProvisionReport) -> dict[str, object]:
    """Convert a provisioning report into a JSON-serialisable mapping."""
    summary = report.summary
    return {
        "summary": {
            "status": summary.status,
            "aborted": summary.aborted,
            "aborted_by": summary.aborted_by,
            "exit_code": summary.exit_code,
            "changed": summary.changed,
            "totals": {
                outcome.value: int(summary.totals.get(outcome, 0))
                for outcome in StageOutcome
            },
        },
        "results": [_serialize_result(result) for result in report.results],
        "metadata": _sanitize_payload(report.metadata) if report.metadata else {},
    }


def _render_host_summary(summary: HostSummary) -> None:
    """Render the host summary as Rich tables."""
    tools = Table(title="Installed tools", show_header=False)
    tools.add_column("Tool", style="bold")
    tools.add_column("Version")
    for label, value in summary.tools:
        tools.add_row(label, value)
    console.print(tools)

    directories = Table(title="App directories", show_header=False)
    directories.add_column("Name", style="bold")
    directories.add_column("Path")
    for label, value in summary.directories:
        directories.add_row(label, value)
    console.print(directories)

    database = Table(title="Database credentials", show_header=False)
    database.add_column("Key", style="bold")
    database.add_column("Value")
    for label, value in summary.database:
        database.add_row(label, value)
    console.print(database)

    console.print("[bold]Services[/bold]")
    for state in summary.services:
        marker = "[green]✓[/green]" if state.ok else "[red]✗[/red]"
        console.print(f"  {marker} {state.label}: {state.detail}")


def _render_provision_report(report: ProvisionReport, host: HostSummary | None = None) -> None:
    summary = report.summary
    totals = summary.totals
    if host is not None:
        console.print()
        _render_host_summary(host)
    console.print()
    console.print(
        f"Provision summary: {summary.status} "
        f"(changed={summary.changed}, exit={summary.exit_code})"
    )
    console.print(
        " ".join(f"{outcome.value}={totals.get(outcome, 0)}" for outcome in StageOutcome)
    )
    if summary.aborted:
        console.print(f"[red]Aborted by stage '{summary.aborted_by}'.[/red]")


def _print_stage_start(stage: StageDefinition) -> None:
    console.print(f"[bold blue]==>[/bold blue] {stage.title}")


def _print_stage_result(result: StageResult) -> None:
    console.print(f"    {_OUTCOME_STYLE[result.outcome]} {result.message}")
    for warning in result.warnings:
        console.print(f"    [yellow]warning:[/yellow] {warning}")
    for error in result.errors:
        console.print(f"    [red]error:[/red] {error}")


@app.command()
def provision(
    ctx: typer.Context,
    config_file: Path | None = CONFIG_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Provision this host for Elden ATS; safe to re-run."""
    runtime = _ensure_runtime(ctx, config_file, reload=config_file is not None)
    config = runtime.config
    with runtime.logger.operation(
        "provision",
        args={
            "config_file": str(config.config_file),
            "json": json_output,
        },
        target={"kind": "host", "scope": "provision"},
    ) as op:
        if not _is_root():
            _command_error(
                op,
                "atsctl provision must run as root (try sudo).",
                rc=int(ExitCode.ENVIRONMENT),
            )

        try:
            with runtime.locks.global_lock() as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                context = create_provision_context(config, templates=runtime.templates)
                engine = ProvisionEngine(context)

                def _on_result(stage: StageDefinition, result: StageResult) -> None:
                    detail = result.message
                    if result.errors:
                        detail = f"{detail} ({'; '.join(result.errors)})"
                    op.add_step(
                        stage.id,
                        status=_STEP_STATUS[result.outcome],
                        detail=detail,
                    )
                    if not json_output:
                        _print_stage_result(result)

                report = engine.run(
                    collect_stages(),
                    metadata={"config_file": str(config.config_file)},
                    on_start=None if json_output else _print_stage_start,
                    on_result=_on_result,
                )
        except LockTimeoutError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))

        payload = _serialize_provision_report(report)
        if json_output:
            console.print_json(data=payload)
        else:
            _render_provision_report(report, context.host_summary)

        summary = report.summary
        warnings = [
            f"{result.id}: {message}"
            for result in report.results
            for message in (*result.warnings, *result.errors)
            if not (result.is_failure and result.id == summary.aborted_by)
        ]
        log_context = {"report": payload}
        backups = [
            str(result.data["backup"])
            for result in report.results
            if result.data and result.data.get("backup")
        ]
        if summary.aborted:
            aborting = report.results[-1]
            op.error(
                f"Provisioning aborted by stage '{summary.aborted_by}'.",
                errors=list(aborting.errors) or [aborting.message],
                rc=summary.exit_code,
                changed=summary.changed,
                context=log_context,
            )
            raise typer.Exit(code=summary.exit_code)
        if warnings:
            op.warning(
                "Provisioning completed with warnings.",
                warnings=warnings,
                changed=summary.changed,
                backups=backups,
                context=log_context,
            )
            return
        op.success(
            "Provisioning completed.",
            changed=summary.changed,
            backups=backups,
            context=log_context,
        )


@app.command()
def status(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show tool versions, paths, credentials and service states."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"json": json_output},
        target={"kind": "host", "scope": "status"},
    ) as op:
        context = create_provision_context(runtime.config, templates=runtime.templates)
        summary = collect_summary(context)
        if json_output:
            console.print_json(data=summary.to_dict())
        else:
            _render_host_summary(summary)
        op.success("Reported host status.", changed=0)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, (dict, list)):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()
