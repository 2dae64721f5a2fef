"""Configuration loader for atsctl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults (the values the Elden ATS VM has always been built with).
2. ``/etc/atsctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``ATSCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export ATSCTL_POSTGRES__READINESS__ATTEMPTS=120
    export ATSCTL_NGINX__FILE_POLICY=reconcile

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml


ENV_PREFIX = "ATSCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

WRITE_ONCE = "write-once"
RECONCILE = "reconcile"
ALLOWED_FILE_POLICIES = {WRITE_ONCE, RECONCILE}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ReadinessConfig:
    """Bounds for the PostgreSQL readiness poll."""

    attempts: int = 60
    interval: float = 1.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"attempts": self.attempts, "interval": self.interval}


@dataclass(frozen=True)
class PostgresConfig:
    """Database engine, cluster and object settings."""

    database: str = "ring"
    user: str = "postgres"
    password: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    service: str = "postgresql"
    cluster: str = "main"
    fallback_version: str = "14"
    config_root: Path = Path("/etc/postgresql")
    settings: tuple[tuple[str, str], ...] = (
        ("listen_addresses", "'localhost'"),
        ("max_connections", "100"),
        ("shared_buffers", "256MB"),
    )
    hba_rules: tuple[str, ...] = (
        "local   all   postgres   md5",
        "local   all   all   md5",
    )
    readiness: ReadinessConfig = ReadinessConfig()

    def cluster_dir(self, version: str) -> Path:
        """Return the configuration directory of the cluster for *version*."""
        return self.config_root / version / self.cluster

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "host": self.host,
            "port": self.port,
            "service": self.service,
            "cluster": self.cluster,
            "fallback_version": self.fallback_version,
            "config_root": str(self.config_root),
            "settings": dict(self.settings),
            "hba_rules": list(self.hba_rules),
            "readiness": self.readiness.to_dict(),
        }


@dataclass(frozen=True)
class AppLayoutConfig:
    """Application directory tree and its ownership."""

    root: Path = Path("/var/www/Elden-ATS")
    frontend_dir: str = "Frontend-ATS"
    backend_dir: str = "Backend-ATS"
    owner: str = "ubuntu"
    group: str = "ubuntu"
    mode: int = 0o755

    @property
    def frontend_path(self) -> Path:
        """Return the frontend directory."""
        return self.root / self.frontend_dir

    @property
    def backend_path(self) -> Path:
        """Return the backend directory."""
        return self.root / self.backend_dir

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "root": str(self.root),
            "frontend_dir": self.frontend_dir,
            "backend_dir": self.backend_dir,
            "owner": self.owner,
            "group": self.group,
            "mode": f"{self.mode:04o}",
        }


@dataclass(frozen=True)
class NginxConfig:
    """Reverse proxy site settings."""

    site_name: str = "elden-ats"
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    service: str = "nginx"
    nginx_bin: str = "nginx"
    listen_port: int = 80
    backend_prefix: str = "/backend/"
    file_policy: str = WRITE_ONCE

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "site_name": self.site_name,
            "sites_available": str(self.sites_available),
            "sites_enabled": str(self.sites_enabled),
            "service": self.service,
            "nginx_bin": self.nginx_bin,
            "listen_port": self.listen_port,
            "backend_prefix": self.backend_prefix,
            "file_policy": self.file_policy,
        }


@dataclass(frozen=True)
class BackendConfig:
    """Backend runtime environment and service unit settings."""

    service_name: str = "ats-backend"
    unit_dir: Path = Path("/etc/systemd/system")
    description: str = "ATS FastAPI backend (uvicorn)"
    group: str = "www-data"
    host: str = "127.0.0.1"
    port: int = 8000
    app_module: str = "app.main:app"
    python_bin: str = "python3"
    venv_name: str = ".venv"
    restart_sec: str = "5s"
    file_policy: str = WRITE_ONCE

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "service_name": self.service_name,
            "unit_dir": str(self.unit_dir),
            "description": self.description,
            "group": self.group,
            "host": self.host,
            "port": self.port,
            "app_module": self.app_module,
            "python_bin": self.python_bin,
            "venv_name": self.venv_name,
            "restart_sec": self.restart_sec,
            "file_policy": self.file_policy,
        }


@dataclass(frozen=True)
class FirewallConfig:
    """UFW application profiles to allow."""

    rules: tuple[str, ...] = ("Nginx Full", "OpenSSH")
    ufw_bin: str = "ufw"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"rules": list(self.rules), "ufw_bin": self.ufw_bin}


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    systemctl_bin: str = "systemctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"systemctl_bin": self.systemctl_bin}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for atsctl."""

    config_file: Path
    logs_dir: Path
    runtime_dir: Path
    templates_dir: Path
    lock_timeout: float
    packages: tuple[str, ...]
    postgres: PostgresConfig
    app: AppLayoutConfig
    nginx: NginxConfig
    backend: BackendConfig
    firewall: FirewallConfig
    systemd: SystemdConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "packages": list(self.packages),
            "postgres": self.postgres.to_dict(),
            "app": self.app.to_dict(),
            "nginx": self.nginx.to_dict(),
            "backend": self.backend.to_dict(),
            "firewall": self.firewall.to_dict(),
            "systemd": self.systemd.to_dict(),
        }


DEFAULT_PACKAGES: tuple[str, ...] = (
    "curl",
    "gnupg2",
    "ca-certificates",
    "lsb-release",
    "apt-transport-https",
    "build-essential",
    "python3",
    "python3-venv",
    "python3-pip",
    "git",
    "postgresql",
    "postgresql-contrib",
    "nginx",
    "nodejs",
    "npm",
)

DEFAULTS: dict[str, object] = {
    "config_file": "/etc/atsctl/config.yml",
    "logs_dir": "/var/log/atsctl",
    "runtime_dir": "/run/atsctl",
    "templates_dir": "/etc/atsctl/templates",
    "lock_timeout": 30.0,
    "packages": list(DEFAULT_PACKAGES),
    "postgres": {
        "database": "ring",
        "user": "postgres",
        "password": "postgres",
        "host": "localhost",
        "port": 5432,
        "service": "postgresql",
        "cluster": "main",
        "fallback_version": "14",
        "config_root": "/etc/postgresql",
        "settings": {
            "listen_addresses": "'localhost'",
            "max_connections": 100,
            "shared_buffers": "256MB",
        },
        "hba_rules": [
            "local   all   postgres   md5",
            "local   all   all   md5",
        ],
        "readiness": {
            "attempts": 60,
            "interval": 1.0,
        },
    },
    "app": {
        "root": "/var/www/Elden-ATS",
        "frontend_dir": "Frontend-ATS",
        "backend_dir": "Backend-ATS",
        "owner": "ubuntu",
        "group": "ubuntu",
        "mode": "0755",
    },
    "nginx": {
        "site_name": "elden-ats",
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
        "service": "nginx",
        "nginx_bin": "nginx",
        "listen_port": 80,
        "backend_prefix": "/backend/",
        "file_policy": WRITE_ONCE,
    },
    "backend": {
        "service_name": "ats-backend",
        "unit_dir": "/etc/systemd/system",
        "description": "ATS FastAPI backend (uvicorn)",
        "group": "www-data",
        "host": "127.0.0.1",
        "port": 8000,
        "app_module": "app.main:app",
        "python_bin": "python3",
        "venv_name": ".venv",
        "restart_sec": "5s",
        "file_policy": WRITE_ONCE,
    },
    "firewall": {
        "rules": ["Nginx Full", "OpenSSH"],
        "ufw_bin": "ufw",
    },
    "systemd": {
        "systemctl_bin": "systemctl",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_SECTION_KEYS: dict[str, set[str]] = {
    "postgres": set(cast(Mapping[str, object], DEFAULTS["postgres"]).keys()),
    "app": set(cast(Mapping[str, object], DEFAULTS["app"]).keys()),
    "nginx": set(cast(Mapping[str, object], DEFAULTS["nginx"]).keys()),
    "backend": set(cast(Mapping[str, object], DEFAULTS["backend"]).keys()),
    "firewall": set(cast(Mapping[str, object], DEFAULTS["firewall"]).keys()),
    "systemd": set(cast(Mapping[str, object], DEFAULTS["systemd"]).keys()),
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    for section, allowed in _SECTION_KEYS.items():
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    postgres_map = _as_dict(raw.get("postgres"), "postgres")
    readiness_map = _as_dict(postgres_map.get("readiness"), "postgres.readiness")
    unknown_readiness = set(readiness_map.keys()) - {"attempts", "interval"}
    if unknown_readiness:
        joined = ", ".join(sorted(unknown_readiness))
        raise ConfigError(f"Unknown postgres.readiness keys: {joined}.")

    for section in ("nginx", "backend"):
        section_map = _as_dict(raw.get(section), section)
        policy = section_map.get("file_policy")
        if policy is not None and str(policy) not in ALLOWED_FILE_POLICIES:
            allowed = ", ".join(sorted(ALLOWED_FILE_POLICIES))
            raise ConfigError(
                f"Unsupported {section}.file_policy '{policy}'. Allowed: {allowed}."
            )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    logs_dir = _to_path(raw.get("logs_dir"))
    runtime_dir = _to_path(raw.get("runtime_dir"))
    templates_dir = _to_path(raw.get("templates_dir"))
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)

    packages = _as_str_tuple(raw.get("packages"), "packages")
    if not packages:
        raise ConfigError("packages must list at least one package name.")

    postgres = _build_postgres(_as_dict(raw.get("postgres"), "postgres"))

    app_mapping = _as_dict(raw.get("app"), "app")
    defaults_app = AppLayoutConfig()
    app = AppLayoutConfig(
        root=_to_path(app_mapping.get("root", str(defaults_app.root))),
        frontend_dir=str(app_mapping.get("frontend_dir", defaults_app.frontend_dir)),
        backend_dir=str(app_mapping.get("backend_dir", defaults_app.backend_dir)),
        owner=str(app_mapping.get("owner", defaults_app.owner)),
        group=str(app_mapping.get("group", defaults_app.group)),
        mode=_parse_permission_mode(app_mapping.get("mode", "0755"), "app.mode"),
    )

    nginx_mapping = _as_dict(raw.get("nginx"), "nginx")
    defaults_nginx = NginxConfig()
    backend_prefix = str(nginx_mapping.get("backend_prefix", defaults_nginx.backend_prefix))
    if not backend_prefix.startswith("/"):
        raise ConfigError("nginx.backend_prefix must start with '/'.")
    nginx = NginxConfig(
        site_name=str(nginx_mapping.get("site_name", defaults_nginx.site_name)),
        sites_available=_to_path(
            nginx_mapping.get("sites_available", str(defaults_nginx.sites_available))
        ),
        sites_enabled=_to_path(
            nginx_mapping.get("sites_enabled", str(defaults_nginx.sites_enabled))
        ),
        service=str(nginx_mapping.get("service", defaults_nginx.service)),
        nginx_bin=str(nginx_mapping.get("nginx_bin", defaults_nginx.nginx_bin)),
        listen_port=_expect_port(nginx_mapping.get("listen_port"), "nginx.listen_port", 80),
        backend_prefix=backend_prefix.rstrip("/") + "/",
        file_policy=str(nginx_mapping.get("file_policy", WRITE_ONCE)),
    )

    backend_mapping = _as_dict(raw.get("backend"), "backend")
    defaults_backend = BackendConfig()
    backend = BackendConfig(
        service_name=str(backend_mapping.get("service_name", defaults_backend.service_name)),
        unit_dir=_to_path(backend_mapping.get("unit_dir", str(defaults_backend.unit_dir))),
        description=str(backend_mapping.get("description", defaults_backend.description)),
        group=str(backend_mapping.get("group", defaults_backend.group)),
        host=str(backend_mapping.get("host", defaults_backend.host)),
        port=_expect_port(backend_mapping.get("port"), "backend.port", 8000),
        app_module=str(backend_mapping.get("app_module", defaults_backend.app_module)),
        python_bin=str(backend_mapping.get("python_bin", defaults_backend.python_bin)),
        venv_name=str(backend_mapping.get("venv_name", defaults_backend.venv_name)),
        restart_sec=str(backend_mapping.get("restart_sec", defaults_backend.restart_sec)),
        file_policy=str(backend_mapping.get("file_policy", WRITE_ONCE)),
    )

    firewall_mapping = _as_dict(raw.get("firewall"), "firewall")
    firewall = FirewallConfig(
        rules=_as_str_tuple(firewall_mapping.get("rules", []), "firewall.rules"),
        ufw_bin=str(firewall_mapping.get("ufw_bin", "ufw")),
    )

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        systemctl_bin=str(systemd_mapping.get("systemctl_bin", "systemctl")),
    )

    return AppConfig(
        config_file=config_file,
        logs_dir=logs_dir,
        runtime_dir=runtime_dir,
        templates_dir=templates_dir,
        lock_timeout=lock_timeout,
        packages=packages,
        postgres=postgres,
        app=app,
        nginx=nginx,
        backend=backend,
        firewall=firewall,
        systemd=systemd,
    )


def _build_postgres(mapping: Mapping[str, object]) -> PostgresConfig:
    defaults = PostgresConfig()

    settings_map = _as_dict(mapping.get("settings"), "postgres.settings")
    settings = tuple((key, _setting_value(value, key)) for key, value in settings_map.items())

    readiness_map = _as_dict(mapping.get("readiness"), "postgres.readiness")
    attempts = _expect_int(
        readiness_map.get("attempts"),
        "postgres.readiness.attempts",
        default=defaults.readiness.attempts,
    )
    if attempts <= 0:
        raise ConfigError("postgres.readiness.attempts must be greater than zero.")
    interval = _expect_positive_float(
        readiness_map.get("interval"),
        "postgres.readiness.interval",
        default=defaults.readiness.interval,
        allow_zero=True,
    )

    fallback = str(mapping.get("fallback_version", defaults.fallback_version)).strip()
    if not fallback.isdigit():
        raise ConfigError("postgres.fallback_version must be a major version number.")

    return PostgresConfig(
        database=str(mapping.get("database", defaults.database)),
        user=str(mapping.get("user", defaults.user)),
        password=str(mapping.get("password", defaults.password)),
        host=str(mapping.get("host", defaults.host)),
        port=_expect_port(mapping.get("port"), "postgres.port", defaults.port),
        service=str(mapping.get("service", defaults.service)),
        cluster=str(mapping.get("cluster", defaults.cluster)),
        fallback_version=fallback,
        config_root=_to_path(mapping.get("config_root", str(defaults.config_root))),
        settings=settings,
        hba_rules=_as_str_tuple(mapping.get("hba_rules", []), "postgres.hba_rules"),
        readiness=ReadinessConfig(attempts=attempts, interval=interval),
    )


def _setting_value(value: object, key: str) -> str:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        raise ConfigError(f"postgres.settings.{key} must be a scalar value.")
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(value)


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _as_str_tuple(value: object, label: str) -> tuple[str, ...]:
    if value is None:
        return ()
    items: list[str] = []
    for index, item in enumerate(_as_sequence(value, label)):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{label}[{index}] must be a non-empty string.")
        items.append(item.strip())
    return tuple(items)


def _parse_permission_mode(value: object, label: str) -> int:
    if value is None:
        raise ConfigError(f"{label} must be specified.")
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an octal integer string. Got boolean {value!r}.")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if not text:
            raise ConfigError(f"{label} must be an octal integer string.")
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError as exc:
            raise ConfigError(f"{label} must be an octal integer string.") from exc
    else:
        raise ConfigError(f"{label} must be an octal integer or string.")
    if mode < 0 or mode > 0o777:
        raise ConfigError(f"{label} must be between 0000 and 0777 inclusive.")
    return mode


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_port(value: object | None, label: str, default: int) -> int:
    port = _expect_int(value, label, default=default)
    if port <= 0 or port > 65535:
        raise ConfigError(f"{label} must be between 1 and 65535. Got {port}.")
    return port


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
    allow_zero: bool = False,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric < 0 or (numeric == 0 and not allow_zero):
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "AppLayoutConfig",
    "BackendConfig",
    "ConfigError",
    "FirewallConfig",
    "NginxConfig",
    "PostgresConfig",
    "ReadinessConfig",
    "RECONCILE",
    "SystemdConfig",
    "WRITE_ONCE",
    "load_config",
]
