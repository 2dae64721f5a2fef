"""Provider interfaces for atsctl."""
from __future__ import annotations

from .apt import AptError, AptProvider
from .commands import Runner, run_command
from .nginx import NginxError, NginxProvider, NginxRenderResult
from .postgres import ClusterInfo, PostgresError, PostgresProvider
from .systemd import SystemdError, SystemdProvider, UnitRenderResult
from .ufw import UfwError, UfwProvider
from .virtualenv import VirtualenvError, VirtualenvProvider

__all__ = [
    "AptError",
    "AptProvider",
    "ClusterInfo",
    "NginxError",
    "NginxProvider",
    "NginxRenderResult",
    "PostgresError",
    "PostgresProvider",
    "Runner",
    "SystemdError",
    "SystemdProvider",
    "UfwError",
    "UfwProvider",
    "UnitRenderResult",
    "VirtualenvError",
    "VirtualenvProvider",
    "run_command",
]
