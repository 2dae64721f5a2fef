"""UFW provider for applying firewall rules."""
from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .commands import Runner, describe_failure, run_command


class UfwError(RuntimeError):
    """Raised when a ufw command fails."""


@dataclass(slots=True)
class UfwProvider:
    """Allow application profiles and enable the firewall."""

    runner: Runner = field(default=run_command)
    ufw_bin: str = "ufw"
    which: Callable[[str], str | None] = field(default=shutil.which)

    def available(self) -> bool:
        """Return ``True`` when the ufw binary is on ``PATH``."""
        return self.which(self.ufw_bin) is not None

    def allow(self, rule: str) -> subprocess.CompletedProcess[str]:
        """Allow traffic for *rule* (an application profile or port spec)."""
        return self._run(["allow", rule])

    def enable(self) -> subprocess.CompletedProcess[str]:
        """Enable the firewall without an interactive confirmation."""
        return self._run(["--force", "enable"])

    # ------------------------------------------------------------------
    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.ufw_bin, *args]
        try:
            result = self.runner(command)
        except FileNotFoundError as exc:
            raise UfwError(f"{self.ufw_bin} not found: {exc}") from exc
        if result.returncode != 0:
            raise UfwError(describe_failure(" ".join(command), result))
        return result


__all__ = ["UfwError", "UfwProvider"]
