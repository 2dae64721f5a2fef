"""Systemd provider for service state and the backend service unit."""
from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..config import RECONCILE, WRITE_ONCE
from ..templates import TemplateEngine
from .commands import Runner, describe_failure, run_command


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class UnitRenderResult:
    """Outcome of rendering a service unit."""

    path: Path
    changed: bool
    existed: bool


@dataclass(slots=True)
class SystemdProvider:
    """Render service units and drive ``systemctl``."""

    templates: TemplateEngine
    runner: Runner = field(default=run_command)
    systemd_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"

    def unit_name(self, service: str) -> str:
        """Return the systemd unit name for *service*."""
        if service.endswith(".service"):
            return service
        return f"{service}.service"

    def unit_path(self, service: str) -> Path:
        """Return the full path for the unit file of *service*."""
        return self.systemd_dir / self.unit_name(service)

    def render_unit(
        self,
        service: str,
        context: Mapping[str, object],
        *,
        policy: str = WRITE_ONCE,
    ) -> UnitRenderResult:
        """Render the unit file for *service* following the file *policy*.

        ``write-once`` never touches an existing unit. ``reconcile`` rewrites the
        unit when its content drifted from the template. A daemon reload follows
        every change.
        """
        path = self.unit_path(service)
        existed = path.exists()
        if existed and policy != RECONCILE:
            return UnitRenderResult(path=path, changed=False, existed=True)
        changed = self.templates.render_to_path("systemd/service.j2", path, context, mode=0o644)
        if changed:
            self.daemon_reload()
        return UnitRenderResult(path=path, changed=changed, existed=existed)

    def daemon_reload(self) -> subprocess.CompletedProcess[str]:
        """Ask systemd to re-read unit files."""
        return self._systemctl("daemon-reload")

    def enable(self, service: str) -> subprocess.CompletedProcess[str]:
        """Enable *service* at boot."""
        return self._systemctl("enable", service)

    def start(self, service: str) -> subprocess.CompletedProcess[str]:
        """Start *service*."""
        return self._systemctl("start", service)

    def restart(self, service: str) -> subprocess.CompletedProcess[str]:
        """Restart *service*."""
        return self._systemctl("restart", service)

    def is_active(self, service: str) -> bool:
        """Return ``True`` when *service* is running."""
        return self._query("is-active", service)

    def is_enabled(self, service: str) -> bool:
        """Return ``True`` when *service* is enabled at boot."""
        return self._query("is-enabled", service)

    # ------------------------------------------------------------------
    def _query(self, command: str, service: str) -> bool:
        try:
            result = self._systemctl(command, service, check=False, quiet=True)
        except SystemdError:
            return False
        return result.returncode == 0

    def _systemctl(
        self,
        command: str,
        unit: str | None = None,
        *,
        check: bool = True,
        quiet: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if quiet:
            args.append("--quiet")
        if unit is not None:
            args.append(unit)
        return self._run_command(
            args,
            check=check,
            error_prefix=f"{self.systemctl_bin} {command}",
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = self.runner(list(args))
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            raise SystemdError(describe_failure(error_prefix, result))
        return result


__all__ = ["SystemdError", "SystemdProvider", "UnitRenderResult"]
