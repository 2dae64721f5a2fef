"""Tests for the apt provider."""
from __future__ import annotations

from collections.abc import Mapping, Sequence

import pytest

from atsctl.providers.apt import AptError, AptProvider


class DummyResult:
    """Stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class RecordingRunner:
    """Answer dpkg-query from a set of installed packages; record apt-get calls."""

    def __init__(self, installed: set[str], *, apt_rc: int = 0) -> None:
        """Store the simulated package state."""
        self.installed = installed
        self.apt_rc = apt_rc
        self.calls: list[tuple[list[str], Mapping[str, str] | None]] = []

    def __call__(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
    ) -> DummyResult:
        self.calls.append((list(args), env))
        if args[0] == "dpkg-query":
            package = args[-1]
            if package in self.installed:
                return DummyResult(stdout="install ok installed")
            return DummyResult(returncode=1, stderr=f"no packages found matching {package}")
        return DummyResult(returncode=self.apt_rc, stderr="E: Unable to locate package")


def test_missing_preserves_order() -> None:
    """Only uninstalled packages are reported, in configured order."""
    runner = RecordingRunner({"git", "nginx"})
    provider = AptProvider(runner=runner)  # type: ignore[arg-type]

    assert provider.missing(["curl", "git", "nginx", "nodejs"]) == ["curl", "nodejs"]


def test_deinstalled_status_is_not_installed() -> None:
    """Packages removed but not purged do not count as installed."""

    def runner(args: Sequence[str], **_: object) -> DummyResult:
        return DummyResult(stdout="deinstall ok config-files")

    provider = AptProvider(runner=runner)  # type: ignore[arg-type]

    assert provider.is_installed("nginx") is False


def test_update_and_install_are_noninteractive() -> None:
    """apt-get runs with DEBIAN_FRONTEND=noninteractive and -y."""
    runner = RecordingRunner(set())
    provider = AptProvider(runner=runner)  # type: ignore[arg-type]

    provider.update()
    provider.install(["nginx", "postgresql"])

    assert runner.calls == [
        (["apt-get", "update", "-y"], {"DEBIAN_FRONTEND": "noninteractive"}),
        (
            ["apt-get", "install", "-y", "nginx", "postgresql"],
            {"DEBIAN_FRONTEND": "noninteractive"},
        ),
    ]


def test_install_failure_raises() -> None:
    """Non-zero apt-get exits raise AptError with stderr."""
    provider = AptProvider(runner=RecordingRunner(set(), apt_rc=100))  # type: ignore[arg-type]

    with pytest.raises(AptError, match="Unable to locate package"):
        provider.install(["nosuchpkg"])


def test_missing_dpkg_query_reports_not_installed() -> None:
    """A missing dpkg-query binary marks packages as missing."""

    def runner(args: Sequence[str], **_: object) -> DummyResult:
        raise FileNotFoundError(args[0])

    provider = AptProvider(runner=runner)  # type: ignore[arg-type]

    assert provider.missing(["git"]) == ["git"]
