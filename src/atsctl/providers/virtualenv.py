"""Create the backend's isolated Python environment."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .commands import Runner, describe_failure, run_command


class VirtualenvError(RuntimeError):
    """Raised when the virtual environment cannot be created."""


@dataclass(slots=True)
class VirtualenvProvider:
    """Create virtual environments as the deployment user via ``python -m venv``."""

    runner: Runner = field(default=run_command)
    python_bin: str = "python3"
    sudo_bin: str = "sudo"

    def exists(self, path: Path) -> bool:
        """Return ``True`` when *path* already holds an environment directory."""
        return path.is_dir()

    def create(self, path: Path, *, owner: str | None = None) -> subprocess.CompletedProcess[str]:
        """Create an environment at *path*, running as *owner* when given."""
        command = [self.python_bin, "-m", "venv", str(path)]
        if owner:
            command = [self.sudo_bin, "-u", owner, *command]
        try:
            result = self.runner(command)
        except FileNotFoundError as exc:
            raise VirtualenvError(f"{command[0]} not found: {exc}") from exc
        if result.returncode != 0:
            raise VirtualenvError(describe_failure(f"{self.python_bin} -m venv {path}", result))
        return result


__all__ = ["VirtualenvError", "VirtualenvProvider"]
