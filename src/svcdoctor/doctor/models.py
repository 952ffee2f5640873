"""Data models shared by checks, the orchestrator and the reporter."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Protocol, runtime_checkable


class CheckStatus(str, Enum):
    """Outcome of a single diagnostic check."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the status represents a failure."""
        return self is CheckStatus.FAILURE


class RunPhase(str, Enum):
    """Forward-only lifecycle of one diagnostics run."""

    INIT = "init"
    RUNNING_CHECKS = "running_checks"
    AGGREGATING = "aggregating"
    REPORTING = "reporting"
    DONE = "done"


CheckKind = Literal["container", "logs", "endpoint", "hardware"]

CHECK_KIND_VALUES: tuple[CheckKind, ...] = ("container", "logs", "endpoint", "hardware")

# Summary sentinels rendered when a check produced no code.
FAILED_SENTINEL = "Failed"
NOT_FOUND_SENTINEL = "Not Found"
UNKNOWN_SENTINEL = "Unknown"
TIMED_OUT_DETAIL = "timed out"


@dataclass(slots=True, frozen=True)
class CheckResult:
    """Outcome of running one check."""

    name: str
    status: CheckStatus
    detail: str
    code: str | None = None
    kind: CheckKind | None = None
    duration_ms: int | None = None

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the check failed."""
        return self.status.is_failure


@runtime_checkable
class Checker(Protocol):
    """A unit of diagnostic work producing exactly one :class:`CheckResult`."""

    name: str

    def run(self) -> CheckResult:  # pragma: no cover - protocol definition
        """Execute the check."""
        ...


@dataclass(slots=True, frozen=True)
class CheckDefinition:
    """Name + callable for a check; satisfies :class:`Checker`."""

    name: str
    kind: CheckKind
    run: Callable[[], CheckResult]


@dataclass(slots=True, frozen=True)
class SummaryEntry:
    """One enumerated line of the final summary."""

    label: str
    check: str
    fallback: str = FAILED_SENTINEL


@dataclass(slots=True, frozen=True)
class ExecutorOptions:
    """Runtime tunables for executing checks."""

    max_concurrency: int = 4
    deadline: float | None = None


@dataclass(slots=True, frozen=True)
class DiagnosticReport:
    """Ordered results of one diagnostics run."""

    results: Sequence[CheckResult]
    captured_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> CheckResult | None:
        """Return the result for check *name*, if present."""
        for result in self.results:
            if isinstance(result, CheckResult) and result.name == name:
                return result
        return None

    @property
    def totals(self) -> Mapping[CheckStatus, int]:
        """Return the number of results per status."""
        return count_statuses(self.results)


def count_statuses(results: Iterable[object]) -> dict[CheckStatus, int]:
    """Count results per status, ignoring anything that is not a result."""
    totals = {status: 0 for status in CheckStatus}
    for result in results:
        if isinstance(result, CheckResult):
            totals[result.status] += 1
    return totals


__all__ = [
    "CHECK_KIND_VALUES",
    "CheckDefinition",
    "CheckKind",
    "CheckResult",
    "CheckStatus",
    "Checker",
    "DiagnosticReport",
    "ExecutorOptions",
    "FAILED_SENTINEL",
    "NOT_FOUND_SENTINEL",
    "RunPhase",
    "SummaryEntry",
    "TIMED_OUT_DETAIL",
    "UNKNOWN_SENTINEL",
    "count_statuses",
]
