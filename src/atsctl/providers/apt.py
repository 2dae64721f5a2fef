"""APT provider for ensuring Debian packages are installed."""
from __future__ import annotations

import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .commands import Runner, describe_failure, run_command

_NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class AptError(RuntimeError):
    """Raised when the package manager fails."""


@dataclass(slots=True)
class AptProvider:
    """Query and install packages with ``dpkg-query`` and ``apt-get``."""

    runner: Runner = field(default=run_command)
    apt_get_bin: str = "apt-get"
    dpkg_query_bin: str = "dpkg-query"

    def is_installed(self, package: str) -> bool:
        """Return ``True`` when dpkg reports *package* as installed."""
        try:
            result = self.runner(
                [self.dpkg_query_bin, "-W", "-f=${Status}", package],
            )
        except FileNotFoundError:
            return False
        if result.returncode != 0:
            return False
        return "install ok installed" in (result.stdout or "")

    def missing(self, packages: Iterable[str]) -> list[str]:
        """Return the subset of *packages* that is not installed, in order."""
        return [package for package in packages if not self.is_installed(package)]

    def update(self) -> subprocess.CompletedProcess[str]:
        """Refresh the package index."""
        return self._apt(["update", "-y"])

    def install(self, packages: Sequence[str]) -> subprocess.CompletedProcess[str]:
        """Install *packages* non-interactively."""
        return self._apt(["install", "-y", *packages])

    # ------------------------------------------------------------------
    def _apt(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.apt_get_bin, *args]
        try:
            result = self.runner(command, env=_NONINTERACTIVE)
        except FileNotFoundError as exc:
            raise AptError(f"{self.apt_get_bin} not found: {exc}") from exc
        if result.returncode != 0:
            raise AptError(describe_failure(f"{self.apt_get_bin} {args[0]}", result))
        return result


__all__ = ["AptError", "AptProvider"]
