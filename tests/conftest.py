"""Shared pytest fixtures and configuration for the test suite."""

from __future__ import annotations

import grp
import os
import pwd
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


class FakeCompleted:
    """Stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, args: Sequence[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the fake result."""
        self.args = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@dataclass
class FakeHost:
    """In-memory Ubuntu host answering the commands the providers run."""

    installed: set[str] = field(default_factory=set)
    clusters: set[tuple[str, str]] = field(default_factory=set)
    active: set[str] = field(default_factory=set)
    enabled: set[str] = field(default_factory=set)
    databases: set[str] = field(default_factory=lambda: {"postgres", "template0", "template1"})
    roles: set[str] = field(default_factory=lambda: {"postgres"})
    pg_version: str = "14"
    postgres_boots: bool = True
    nginx_test_rc: int = 0
    apt_fail: bool = False
    ufw_fail: set[str] = field(default_factory=set)
    calls: list[list[str]] = field(default_factory=list)
    sql: list[str] = field(default_factory=list)

    def __call__(self, args: Sequence[str], *, env: Mapping[str, str] | None = None) -> FakeCompleted:
        command = list(args)
        self.calls.append(command)
        if command[:3] == ["sudo", "-u", "postgres"]:
            return self._postgres(command[3:])
        if command[0] == "sudo" and command[1] == "-u":
            return self._as_user(command[3:])
        if command[0] == "sudo":
            command = command[1:]
        handler = getattr(self, f"_cmd_{command[0].replace('-', '_').replace('.', '_')}", None)
        if handler is None:
            raise FileNotFoundError(command[0])
        return handler(command)

    # helpers ---------------------------------------------------------------
    def commands(self, prefix: str) -> list[list[str]]:
        """Return recorded calls whose joined text starts with *prefix*."""
        return [call for call in self.calls if " ".join(call).startswith(prefix)]

    def mutating_calls(self) -> list[list[str]]:
        """Return calls other than read-only queries."""
        readonly = (
            "dpkg-query",
            "psql --version",
            "sudo pg_lsclusters",
            "systemctl is-",
            "sudo -u postgres psql -c SELECT 1",
            "sudo -u postgres psql -lqt",
            "sudo -u postgres psql -tAc",
            "nginx -v",
            "node -v",
            "python3 --version",
            "git --version",
        )
        return [call for call in self.calls if not " ".join(call).startswith(readonly)]

    # command handlers ------------------------------------------------------
    def _cmd_dpkg_query(self, command: list[str]) -> FakeCompleted:
        package = command[-1]
        if package in self.installed:
            return FakeCompleted(command, stdout="install ok installed")
        return FakeCompleted(command, returncode=1, stderr=f"no packages found matching {package}")

    def _cmd_apt_get(self, command: list[str]) -> FakeCompleted:
        if self.apt_fail:
            return FakeCompleted(command, returncode=100, stderr="E: Unable to locate package nodejs")
        if command[1] == "install":
            self.installed.update(command[3:])
        return FakeCompleted(command)

    def _cmd_psql(self, command: list[str]) -> FakeCompleted:
        if "postgresql" not in self.installed:
            raise FileNotFoundError("psql")
        return FakeCompleted(command, stdout=f"psql (PostgreSQL) {self.pg_version}.11 (Ubuntu)")

    def _cmd_pg_lsclusters(self, command: list[str]) -> FakeCompleted:
        lines = [
            f"{version} {name} 5432 online postgres /var/lib/postgresql/{version}/{name}"
            for version, name in sorted(self.clusters)
        ]
        return FakeCompleted(command, stdout="\n".join(lines))

    def _cmd_pg_createcluster(self, command: list[str]) -> FakeCompleted:
        self.clusters.add((command[1], command[2]))
        return FakeCompleted(command)

    def _cmd_systemctl(self, command: list[str]) -> FakeCompleted:
        action = command[1]
        unit = command[-1].removesuffix(".service")
        if action == "daemon-reload":
            return FakeCompleted(command)
        if action == "enable":
            self.enabled.add(unit)
        elif action in {"start", "restart"}:
            if unit == "postgresql" and not self.postgres_boots:
                return FakeCompleted(command)
            self.active.add(unit)
        elif action == "is-active":
            return FakeCompleted(command, returncode=0 if unit in self.active else 3)
        elif action == "is-enabled":
            return FakeCompleted(command, returncode=0 if unit in self.enabled else 1)
        return FakeCompleted(command)

    def _cmd_nginx(self, command: list[str]) -> FakeCompleted:
        if command[1] == "-v":
            return FakeCompleted(command, stderr="nginx version: nginx/1.24.0 (Ubuntu)")
        if self.nginx_test_rc:
            return FakeCompleted(command, returncode=self.nginx_test_rc, stderr="emerg: bad config")
        return FakeCompleted(command, stderr="syntax is ok")

    def _cmd_ufw(self, command: list[str]) -> FakeCompleted:
        rule = command[-1]
        if rule in self.ufw_fail:
            return FakeCompleted(command, returncode=1, stderr=f"Could not find a profile matching '{rule}'")
        return FakeCompleted(command)

    def _cmd_node(self, command: list[str]) -> FakeCompleted:
        return FakeCompleted(command, stdout="v20.11.1\n")

    def _cmd_python3(self, command: list[str]) -> FakeCompleted:
        return FakeCompleted(command, stdout="Python 3.12.3\n")

    def _cmd_git(self, command: list[str]) -> FakeCompleted:
        return FakeCompleted(command, stdout="git version 2.43.0\n")

    def _as_user(self, command: list[str]) -> FakeCompleted:
        if command[1:3] == ["-m", "venv"]:
            venv = Path(command[3])
            venv.mkdir(parents=True, exist_ok=True)
            venv.chmod(0o755)
            return FakeCompleted(command)
        raise FileNotFoundError(command[0])

    def _postgres(self, command: list[str]) -> FakeCompleted:
        if "postgresql" not in self.active:
            return FakeCompleted(command, returncode=2, stderr="could not connect to server")
        if command[0] == "createdb":
            self.databases.add(command[1])
            return FakeCompleted(command)
        if command[1] == "-lqt":
            rows = [f" {name} | postgres | UTF8 | C.UTF-8 | C.UTF-8 |" for name in sorted(self.databases)]
            return FakeCompleted(command, stdout="\n".join(rows))
        if command[1] == "-tAc":
            role = command[2].split("rolname='", 1)[1].split("'", 1)[0]
            return FakeCompleted(command, stdout="1\n" if role in self.roles else "")
        if command[1] == "-c":
            return FakeCompleted(command, stdout=" ?column? \n----------\n        1\n")
        self.sql.append(command[-1])
        return FakeCompleted(command)


@pytest.fixture
def fake_host() -> FakeHost:
    """Return a fresh, empty fake host."""
    return FakeHost()


def _current_owner() -> tuple[str, str]:
    return pwd.getpwuid(os.getuid()).pw_name, grp.getgrgid(os.getgid()).gr_name


@pytest.fixture
def host_paths(tmp_path: Path) -> dict[str, object]:
    """Return configuration overrides that keep every host path under *tmp_path*."""
    owner, group = _current_owner()
    pg_main = tmp_path / "etc" / "postgresql" / "14" / "main"
    pg_main.mkdir(parents=True)
    (pg_main / "postgresql.conf").write_text(
        "#listen_addresses = 'localhost'\nmax_connections = 100\nshared_buffers = 128MB\n",
        encoding="utf-8",
    )
    (pg_main / "pg_hba.conf").write_text(
        "local   all             postgres                                peer\n",
        encoding="utf-8",
    )
    return {
        "logs_dir": str(tmp_path / "logs"),
        "runtime_dir": str(tmp_path / "run"),
        "templates_dir": str(tmp_path / "templates"),
        "postgres": {"config_root": str(tmp_path / "etc" / "postgresql")},
        "app": {"root": str(tmp_path / "www" / "Elden-ATS"), "owner": owner, "group": group},
        "nginx": {
            "sites_available": str(tmp_path / "nginx" / "sites-available"),
            "sites_enabled": str(tmp_path / "nginx" / "sites-enabled"),
        },
        "backend": {"unit_dir": str(tmp_path / "systemd")},
    }
