"""Provision command infrastructure."""

from __future__ import annotations

from .engine import ProvisionEngine, create_provision_context
from .models import (
    FailurePolicy,
    ProvisionContext,
    ProvisionReport,
    ProvisionSummary,
    Readiness,
    StageDefinition,
    StageOutcome,
    StageResult,
    build_report,
    summarize,
)
from .stages import STAGES, collect_stages
from .summary import HostSummary, ServiceState, collect_summary

__all__ = [
    "FailurePolicy",
    "HostSummary",
    "ProvisionContext",
    "ProvisionEngine",
    "ProvisionReport",
    "ProvisionSummary",
    "Readiness",
    "STAGES",
    "ServiceState",
    "StageDefinition",
    "StageOutcome",
    "StageResult",
    "build_report",
    "collect_stages",
    "collect_summary",
    "create_provision_context",
    "summarize",
]
