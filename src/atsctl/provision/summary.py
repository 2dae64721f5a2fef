"""Read-only status summary of a provisioned host."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .models import ProvisionContext

TOOL_COMMANDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Nginx", ("nginx", "-v")),
    ("Node.js", ("node", "-v")),
    ("Python", ("python3", "--version")),
    ("PostgreSQL", ("psql", "--version")),
    ("Git", ("git", "--version")),
)

NOT_FOUND = "not found"


@dataclass(slots=True, frozen=True)
class ServiceState:
    """Observed state of one service."""

    label: str
    service: str
    ok: bool
    detail: str


@dataclass(slots=True)
class HostSummary:
    """Everything the status report shows."""

    tools: list[tuple[str, str]] = field(default_factory=list)
    directories: list[tuple[str, str]] = field(default_factory=list)
    database: list[tuple[str, str]] = field(default_factory=list)
    services: list[ServiceState] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "tools": dict(self.tools),
            "directories": dict(self.directories),
            "database": dict(self.database),
            "services": [
                {
                    "label": state.label,
                    "service": state.service,
                    "ok": state.ok,
                    "detail": state.detail,
                }
                for state in self.services
            ],
        }


def tool_version(context: ProvisionContext, command: Sequence[str]) -> str:
    """Return the first line a ``--version`` style command prints."""
    try:
        result = context.runner(list(command))
    except FileNotFoundError:
        return NOT_FOUND
    if result.returncode != 0:
        return NOT_FOUND
    # nginx -v writes its banner to stderr.
    output = (result.stdout or "").strip() or (result.stderr or "").strip()
    return output.splitlines()[0] if output else NOT_FOUND


def collect_summary(context: ProvisionContext) -> HostSummary:
    """Query tool versions, paths, credentials and service states."""
    config = context.config
    summary = HostSummary()

    for label, command in TOOL_COMMANDS:
        summary.tools.append((label, tool_version(context, command)))

    summary.directories.append(("Frontend", f"{config.app.frontend_path}/"))
    summary.directories.append(("Backend", f"{config.app.backend_path}/"))

    postgres = config.postgres
    summary.database.extend(
        [
            ("Database", postgres.database),
            ("User", postgres.user),
            ("Password", postgres.password),
            ("Host", postgres.host),
            ("Port", str(postgres.port)),
        ]
    )

    systemd = context.systemd
    nginx_active = systemd.is_active(config.nginx.service)
    summary.services.append(
        ServiceState(
            label="Nginx",
            service=config.nginx.service,
            ok=nginx_active,
            detail="Running" if nginx_active else "Stopped",
        )
    )
    postgres_active = systemd.is_active(postgres.service)
    summary.services.append(
        ServiceState(
            label="PostgreSQL",
            service=postgres.service,
            ok=postgres_active,
            detail="Running" if postgres_active else "Stopped",
        )
    )
    backend_enabled = systemd.is_enabled(config.backend.service_name)
    summary.services.append(
        ServiceState(
            label="Backend",
            service=config.backend.service_name,
            ok=backend_enabled,
            detail="Enabled (not started yet)" if backend_enabled else "Not enabled",
        )
    )
    return summary


__all__ = ["HostSummary", "ServiceState", "collect_summary", "tool_version"]
