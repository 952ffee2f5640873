"""Diagnostics pipeline: checks, orchestration and reporting."""

from __future__ import annotations

from .checkers import (
    ContainerInspector,
    EndpointProber,
    HardwareProbe,
    LogCollector,
    collect_checks,
    summary_entries,
)
from .engine import Orchestrator, run_checks
from .models import (
    CHECK_KIND_VALUES,
    CheckDefinition,
    Checker,
    CheckResult,
    CheckStatus,
    DiagnosticReport,
    ExecutorOptions,
    RunPhase,
    SummaryEntry,
)
from .report import SummaryReporter, serialize_report

__all__ = [
    "CHECK_KIND_VALUES",
    "CheckDefinition",
    "CheckResult",
    "CheckStatus",
    "Checker",
    "ContainerInspector",
    "DiagnosticReport",
    "EndpointProber",
    "ExecutorOptions",
    "HardwareProbe",
    "LogCollector",
    "Orchestrator",
    "RunPhase",
    "SummaryEntry",
    "SummaryReporter",
    "collect_checks",
    "run_checks",
    "serialize_report",
    "summary_entries",
]
