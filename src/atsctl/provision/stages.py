"""The provisioning stages, in execution order.

Each stage inspects the host first and only mutates what is missing, so the
whole pipeline can be re-run safely.
"""
from __future__ import annotations

import shutil

from ..bootstrap.filesystem import DirectorySpec, apply_directory_plan, plan_directories
from ..providers import UfwError
from .models import (
    FailurePolicy,
    ProvisionContext,
    StageDefinition,
    StageOutcome,
    StageResult,
)
from .pgconf import append_rules, apply_settings, backup_path, missing_rules
from .readiness import wait_for_ready
from .summary import collect_summary


def install_packages(context: ProvisionContext) -> StageResult:
    """Install any configured package that dpkg does not report as installed."""
    packages = context.config.packages
    missing = context.apt.missing(packages)
    if not missing:
        return StageResult(
            outcome=StageOutcome.SATISFIED,
            message=f"All {len(packages)} packages already installed.",
            data={"packages": list(packages)},
        )
    context.apt.update()
    context.apt.install(missing)
    return StageResult(
        outcome=StageOutcome.CHANGED,
        message=f"Installed {len(missing)} package(s): {', '.join(missing)}.",
        data={"installed": missing},
    )


def ensure_cluster(context: ProvisionContext) -> StageResult:
    """Make sure the ``main`` cluster exists for the installed major version."""
    postgres_config = context.config.postgres
    version = context.postgres.detect_major_version(postgres_config.fallback_version)
    context.pg_version = version
    cluster = postgres_config.cluster

    created = False
    if not context.postgres.cluster_exists(version, cluster):
        context.postgres.create_cluster(version, cluster)
        created = True

    context.systemd.enable(postgres_config.service)
    context.systemd.start(postgres_config.service)

    data = {"version": version, "cluster": cluster, "created": created}
    if created:
        return StageResult(
            outcome=StageOutcome.CHANGED,
            message=f"Created PostgreSQL {version} cluster '{cluster}'.",
            data=data,
        )
    return StageResult(
        outcome=StageOutcome.SATISFIED,
        message=f"Cluster for PostgreSQL {version} exists.",
        data=data,
    )


def wait_for_postgres(context: ProvisionContext) -> StageResult:
    """Poll until the service is active and answers a trivial query."""
    postgres_config = context.config.postgres
    service = postgres_config.service

    def _probe() -> bool:
        return context.systemd.is_active(service) and context.postgres.ping()

    readiness = wait_for_ready(
        _probe,
        attempts=postgres_config.readiness.attempts,
        interval=postgres_config.readiness.interval,
        sleep=context.sleep,
    )
    context.readiness = readiness
    data = {
        "ready": readiness.ready,
        "attempts": readiness.attempts,
        "max_attempts": readiness.max_attempts,
        "elapsed_ms": readiness.elapsed_ms,
    }
    if readiness.ready:
        return StageResult(
            outcome=StageOutcome.SATISFIED,
            message=f"PostgreSQL is up (attempt {readiness.attempts}).",
            data=data,
        )
    message = f"PostgreSQL not ready after {readiness.max_attempts} attempts."
    return StageResult(
        outcome=StageOutcome.FAILED,
        message=message,
        data=data,
        errors=(message,),
    )


def provision_database(context: ProvisionContext) -> StageResult:
    """Create the application database and reset the admin role."""
    readiness = context.readiness
    if readiness is None or not readiness.ready:
        message = "PostgreSQL not responding, skipping DB/user creation."
        return StageResult(
            outcome=StageOutcome.SKIPPED,
            message=message,
            errors=(message,),
        )

    postgres_config = context.config.postgres
    database = postgres_config.database
    role = postgres_config.user
    postgres = context.postgres

    created = False
    if not postgres.database_exists(database):
        postgres.create_database(database)
        created = True

    warnings: list[str] = []
    if postgres.role_exists(role):
        postgres.set_password(role, postgres_config.password)
    else:
        warnings.append(f"Role '{role}' does not exist; password not set.")
    postgres.grant_all_on_database(database, role)
    postgres.grant_createdb(role)

    data = {"database": database, "role": role, "database_created": created}
    if created:
        message = f"Database '{database}' created; role '{role}' configured."
    else:
        message = f"Database '{database}' already exists; role '{role}' configured."
    return StageResult(
        outcome=StageOutcome.CHANGED if created else StageOutcome.SATISFIED,
        message=message,
        data=data,
        warnings=tuple(warnings),
    )


def tune_postgres(context: ProvisionContext) -> StageResult:
    """Apply connection and memory settings plus local md5 auth rules."""
    postgres_config = context.config.postgres
    version = context.pg_version or postgres_config.fallback_version
    cluster_dir = postgres_config.cluster_dir(version)
    pg_conf = cluster_dir / "postgresql.conf"
    hba_conf = cluster_dir / "pg_hba.conf"

    changed_settings: list[str] = []
    if pg_conf.is_file():
        original = pg_conf.read_text(encoding="utf-8")
        updated, changed_settings = apply_settings(original, postgres_config.settings)
        if updated != original:
            pg_conf.write_text(updated, encoding="utf-8")

    added_rules: list[str] = []
    backup: str | None = None
    if hba_conf.is_file():
        destination = backup_path(hba_conf, context.today())
        shutil.copy2(hba_conf, destination)
        backup = str(destination)
        original = hba_conf.read_text(encoding="utf-8")
        added_rules = missing_rules(original, postgres_config.hba_rules)
        if added_rules:
            hba_conf.write_text(append_rules(original, added_rules), encoding="utf-8")

    context.systemd.restart(postgres_config.service)

    data = {
        "postgresql_conf": str(pg_conf),
        "pg_hba_conf": str(hba_conf),
        "settings_changed": changed_settings,
        "rules_added": added_rules,
        "backup": backup,
        "restarted": True,
    }
    if changed_settings or added_rules:
        return StageResult(
            outcome=StageOutcome.CHANGED,
            message=(
                f"Updated {len(changed_settings)} setting(s) and "
                f"{len(added_rules)} auth rule(s); PostgreSQL restarted."
            ),
            data=data,
        )
    return StageResult(
        outcome=StageOutcome.SATISFIED,
        message="PostgreSQL configuration already tuned; service restarted.",
        data=data,
    )


def prepare_directories(context: ProvisionContext) -> StageResult:
    """Create the application tree owned by the deployment user."""
    app = context.config.app
    specs = [
        DirectorySpec(path=app.root, mode=app.mode, owner=app.owner, group=app.group, recursive=True),
        DirectorySpec(path=app.frontend_path, mode=app.mode, owner=app.owner, group=app.group),
        DirectorySpec(path=app.backend_path, mode=app.mode, owner=app.owner, group=app.group),
    ]
    plan = plan_directories(specs)
    if plan.warnings:
        return StageResult(
            outcome=StageOutcome.FAILED,
            message="Application directories cannot be prepared.",
            errors=tuple(plan.warnings),
        )
    if plan.is_noop:
        return StageResult(
            outcome=StageOutcome.SATISFIED,
            message=f"Application directories under {app.root} already in place.",
        )
    apply_directory_plan(plan)
    return StageResult(
        outcome=StageOutcome.CHANGED,
        message=f"Applied {len(plan.actions)} filesystem change(s) under {app.root}.",
        data={"actions": [action.description for action in plan.actions]},
    )


def nginx_context(context: ProvisionContext) -> dict[str, object]:
    """Return the template context for the nginx site."""
    config = context.config
    return {
        "site_name": config.nginx.site_name,
        "listen_port": config.nginx.listen_port,
        "server_name": "_",
        "frontend_root": str(config.app.frontend_path / "dist"),
        "backend_prefix": config.nginx.backend_prefix,
        "upstream_host": config.backend.host,
        "upstream_port": config.backend.port,
    }


def configure_nginx(context: ProvisionContext) -> StageResult:
    """Write, enable and validate the site, then restart nginx."""
    nginx_config = context.config.nginx
    result = context.nginx.render_site(nginx_context(context), policy=nginx_config.file_policy)
    data = {"site": str(context.nginx.site_path), "policy": nginx_config.file_policy}
    if result.validation_error:
        return StageResult(
            outcome=StageOutcome.FAILED,
            message=(
                f"nginx site {context.nginx.site_path} written but rejected by "
                "nginx -t; nginx not restarted."
            ),
            data=data,
            errors=(result.validation_error,),
        )
    if not result.changed:
        return StageResult(
            outcome=StageOutcome.SATISFIED,
            message=f"nginx site {context.nginx.site_path} already present.",
            data=data,
        )
    context.systemd.restart(nginx_config.service)
    return StageResult(
        outcome=StageOutcome.CHANGED,
        message=f"nginx site {context.nginx.site_path} written and enabled.",
        data=data,
    )


def backend_unit_context(context: ProvisionContext) -> dict[str, object]:
    """Return the template context for the backend service unit."""
    config = context.config
    backend = config.backend
    venv = config.app.backend_path / backend.venv_name
    postgres_unit = context.systemd.unit_name(config.postgres.service)
    return {
        "description": backend.description,
        "after": ["network.target", postgres_unit],
        "wants": [postgres_unit],
        "service_user": config.app.owner,
        "service_group": backend.group,
        "working_directory": str(config.app.backend_path),
        "environment": [f"PATH={venv}/bin", "PYTHONUNBUFFERED=1"],
        "exec_start": (
            f"{venv}/bin/uvicorn {backend.app_module} "
            f"--host {backend.host} --port {backend.port}"
        ),
        "restart_sec": backend.restart_sec,
    }


def register_backend(context: ProvisionContext) -> StageResult:
    """Create the virtualenv and a boot-enabled (not started) service unit."""
    config = context.config
    backend = config.backend
    venv = config.app.backend_path / backend.venv_name

    steps: list[str] = []
    if not context.virtualenv.exists(venv):
        context.virtualenv.create(venv, owner=config.app.owner)
        steps.append(f"created virtualenv {venv}")

    unit = context.systemd.render_unit(
        backend.service_name,
        backend_unit_context(context),
        policy=backend.file_policy,
    )
    if unit.changed:
        context.systemd.enable(backend.service_name)
        steps.append(f"wrote and enabled {unit.path}")

    data = {"virtualenv": str(venv), "unit": str(unit.path), "policy": backend.file_policy}
    if not steps:
        return StageResult(
            outcome=StageOutcome.SATISFIED,
            message="Backend virtualenv and service unit already present.",
            data=data,
        )
    return StageResult(
        outcome=StageOutcome.CHANGED,
        message="Backend " + "; ".join(steps) + ".",
        data=data,
    )


def configure_firewall(context: ProvisionContext) -> StageResult:
    """Allow web and SSH traffic and enable ufw; failures are only recorded."""
    ufw = context.ufw
    if not ufw.available():
        return StageResult(outcome=StageOutcome.SKIPPED, message="ufw not installed.")

    applied: list[str] = []
    warnings: list[str] = []
    for rule in context.config.firewall.rules:
        try:
            ufw.allow(rule)
        except UfwError as exc:
            warnings.append(str(exc))
        else:
            applied.append(rule)
    enabled = True
    try:
        ufw.enable()
    except UfwError as exc:
        enabled = False
        warnings.append(str(exc))

    return StageResult(
        outcome=StageOutcome.CHANGED if applied or enabled else StageOutcome.FAILED,
        message=f"Firewall rules applied: {', '.join(applied) or 'none'}.",
        data={"rules": applied, "enabled": enabled},
        warnings=tuple(warnings),
    )


def report_summary(context: ProvisionContext) -> StageResult:
    """Collect the read-only host summary."""
    summary = collect_summary(context)
    context.host_summary = summary
    return StageResult(
        outcome=StageOutcome.SATISFIED,
        message="Collected host summary.",
        data=summary.to_dict(),
    )


STAGES: tuple[StageDefinition, ...] = (
    StageDefinition("packages", "Install base packages", FailurePolicy.ABORT, install_packages),
    StageDefinition(
        "postgres.cluster",
        "Ensure PostgreSQL service and cluster",
        FailurePolicy.ABORT,
        ensure_cluster,
    ),
    StageDefinition(
        "postgres.readiness",
        "Wait for PostgreSQL",
        FailurePolicy.WARN,
        wait_for_postgres,
    ),
    StageDefinition(
        "postgres.objects",
        "Configure PostgreSQL database and user",
        FailurePolicy.WARN,
        provision_database,
    ),
    StageDefinition(
        "postgres.tuning",
        "Tune PostgreSQL configs",
        FailurePolicy.ABORT,
        tune_postgres,
    ),
    StageDefinition(
        "filesystem",
        "Create app directories",
        FailurePolicy.ABORT,
        prepare_directories,
    ),
    StageDefinition("nginx", "Configure nginx site", FailurePolicy.WARN, configure_nginx),
    StageDefinition(
        "backend",
        "Python venv and backend service",
        FailurePolicy.ABORT,
        register_backend,
    ),
    StageDefinition("firewall", "Firewall with UFW", FailurePolicy.IGNORE, configure_firewall),
    StageDefinition("summary", "Status summary", FailurePolicy.IGNORE, report_summary),
)


def collect_stages() -> list[StageDefinition]:
    """Return the stage definitions in execution order."""
    return list(STAGES)


__all__ = ["STAGES", "collect_stages"]
