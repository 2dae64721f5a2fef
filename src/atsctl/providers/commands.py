"""Subprocess runner shared by the host providers."""
from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Mapping, Sequence

Runner = Callable[..., subprocess.CompletedProcess[str]]


def run_command(
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *args* capturing text output; non-zero exits are returned, not raised."""
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}
    return subprocess.run(  # noqa: S603, S607
        list(args),
        capture_output=True,
        text=True,
        check=False,
        env=merged_env,
    )


def describe_failure(prefix: str, result: subprocess.CompletedProcess[str]) -> str:
    """Return a one-line failure description for *result*."""
    stdout = getattr(result, "stdout", "") or ""
    stderr = getattr(result, "stderr", "") or ""
    message = stderr.strip() or stdout.strip() or "no output"
    return f"{prefix} failed (exit {result.returncode}): {message}"


__all__ = ["Runner", "describe_failure", "run_command"]
