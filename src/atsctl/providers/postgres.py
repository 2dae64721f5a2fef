"""PostgreSQL provider wrapping the Debian cluster tools and ``psql``."""
from __future__ import annotations

import re
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field

from .commands import Runner, describe_failure, run_command

_VERSION_PATTERN = re.compile(r"\d+")


class PostgresError(RuntimeError):
    """Raised when a PostgreSQL command fails."""


@dataclass(slots=True, frozen=True)
class ClusterInfo:
    """One row of ``pg_lsclusters`` output."""

    version: str
    name: str
    port: int | None
    status: str


def quote_ident(value: str) -> str:
    """Quote *value* as an SQL identifier."""
    return '"' + value.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote *value* as an SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def parse_major_version(output: str) -> str | None:
    """Return the first integer in ``psql --version`` output."""
    match = _VERSION_PATTERN.search(output or "")
    return match.group(0) if match else None


def parse_clusters(output: str) -> list[ClusterInfo]:
    """Parse ``pg_lsclusters --no-header`` output."""
    clusters: list[ClusterInfo] = []
    for line in (output or "").splitlines():
        parts = line.split()
        if len(parts) < 2 or not parts[0][:1].isdigit():
            continue
        port: int | None = None
        if len(parts) > 2 and parts[2].isdigit():
            port = int(parts[2])
        status = parts[3] if len(parts) > 3 else "unknown"
        clusters.append(ClusterInfo(version=parts[0], name=parts[1], port=port, status=status))
    return clusters


def parse_database_list(output: str) -> list[str]:
    """Return database names from ``psql -lqt`` output."""
    names: list[str] = []
    for line in (output or "").splitlines():
        name = line.split("|", 1)[0].strip()
        if name:
            names.append(name)
    return names


@dataclass(slots=True)
class PostgresProvider:
    """Run PostgreSQL administration commands as the ``postgres`` OS user."""

    runner: Runner = field(default=run_command)
    os_user: str = "postgres"
    sudo_bin: str = "sudo"
    psql_bin: str = "psql"
    createdb_bin: str = "createdb"
    lsclusters_bin: str = "pg_lsclusters"
    createcluster_bin: str = "pg_createcluster"

    def detect_major_version(self, fallback: str) -> str:
        """Return the installed major version, or *fallback* when undetectable."""
        try:
            result = self.runner([self.psql_bin, "--version"])
        except FileNotFoundError:
            return fallback
        if result.returncode != 0:
            return fallback
        return parse_major_version(result.stdout) or fallback

    def list_clusters(self) -> list[ClusterInfo]:
        """Return the clusters known to the Debian cluster manager."""
        result = self._run(
            [self.sudo_bin, self.lsclusters_bin, "--no-header"],
            self.lsclusters_bin,
        )
        return parse_clusters(result.stdout)

    def cluster_exists(self, version: str, name: str) -> bool:
        """Return ``True`` when cluster *version*/*name* exists."""
        return any(
            cluster.version == version and cluster.name == name
            for cluster in self.list_clusters()
        )

    def create_cluster(self, version: str, name: str) -> subprocess.CompletedProcess[str]:
        """Create and start cluster *version*/*name*."""
        return self._run(
            [self.sudo_bin, self.createcluster_bin, version, name, "--start"],
            self.createcluster_bin,
        )

    def ping(self) -> bool:
        """Return ``True`` when a trivial query succeeds."""
        try:
            result = self.runner(self._as_postgres([self.psql_bin, "-c", "SELECT 1"]))
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def list_databases(self) -> list[str]:
        """Return the names of existing databases."""
        result = self._run(self._as_postgres([self.psql_bin, "-lqt"]), "psql -lqt")
        return parse_database_list(result.stdout)

    def database_exists(self, name: str) -> bool:
        """Return ``True`` when database *name* exists."""
        return name in self.list_databases()

    def create_database(self, name: str) -> subprocess.CompletedProcess[str]:
        """Create database *name*."""
        return self._run(self._as_postgres([self.createdb_bin, name]), self.createdb_bin)

    def role_exists(self, role: str) -> bool:
        """Return ``True`` when *role* is present in ``pg_roles``."""
        sql = f"SELECT 1 FROM pg_roles WHERE rolname={quote_literal(role)};"
        result = self._run(self._as_postgres([self.psql_bin, "-tAc", sql]), "psql role lookup")
        return (result.stdout or "").strip() == "1"

    def set_password(self, role: str, password: str) -> subprocess.CompletedProcess[str]:
        """Reset the password of *role*."""
        return self.execute(
            f"ALTER USER {quote_ident(role)} WITH PASSWORD {quote_literal(password)};",
            label=f"psql ALTER USER {role} WITH PASSWORD",
        )

    def grant_all_on_database(
        self,
        database: str,
        role: str,
    ) -> subprocess.CompletedProcess[str]:
        """Grant all privileges on *database* to *role*."""
        return self.execute(
            f"GRANT ALL PRIVILEGES ON DATABASE {quote_ident(database)} TO {quote_ident(role)};"
        )

    def grant_createdb(self, role: str) -> subprocess.CompletedProcess[str]:
        """Allow *role* to create databases."""
        return self.execute(f"ALTER USER {quote_ident(role)} CREATEDB;")

    def execute(self, sql: str, *, label: str | None = None) -> subprocess.CompletedProcess[str]:
        """Run *sql* with ``psql``, stopping on the first error.

        *label* replaces the statement in error messages (used for secrets).
        """
        return self._run(
            self._as_postgres([self.psql_bin, "-v", "ON_ERROR_STOP=1", "-c", sql]),
            label or f"psql {sql}",
        )

    # ------------------------------------------------------------------
    def _as_postgres(self, args: Sequence[str]) -> list[str]:
        return [self.sudo_bin, "-u", self.os_user, *args]

    def _run(self, args: Sequence[str], label: str) -> subprocess.CompletedProcess[str]:
        try:
            result = self.runner(list(args))
        except FileNotFoundError as exc:
            raise PostgresError(f"{args[0]} not found: {exc}") from exc
        if result.returncode != 0:
            raise PostgresError(describe_failure(label, result))
        return result


__all__ = [
    "ClusterInfo",
    "PostgresError",
    "PostgresProvider",
    "parse_clusters",
    "parse_database_list",
    "parse_major_version",
    "quote_ident",
    "quote_literal",
]
