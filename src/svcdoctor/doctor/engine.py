"""Check execution harness for diagnostics runs."""

from __future__ import annotations

import concurrent.futures
import logging
import time
import traceback
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .models import (
    TIMED_OUT_DETAIL,
    Checker,
    CheckResult,
    CheckStatus,
    DiagnosticReport,
    ExecutorOptions,
    RunPhase,
)

if TYPE_CHECKING:
    from .report import SummaryReporter

LOGGER = logging.getLogger(__name__)


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _check_name(checker: object, index: int) -> str:
    name = getattr(checker, "name", None)
    if isinstance(name, str) and name:
        return name
    return f"check-{index + 1}"


def _coerce_result(
    checker: Checker,
    name: str,
    result: object,
    duration_ms: int,
) -> CheckResult:
    if not isinstance(result, CheckResult):
        return CheckResult(
            name=name,
            status=CheckStatus.FAILURE,
            detail=f"Check '{name}' returned an invalid result: {result!r}",
            kind=getattr(checker, "kind", None),
            duration_ms=duration_ms,
        )
    coerced = result
    if result.name != name:
        coerced = replace(coerced, name=name)
    if result.duration_ms is None:
        coerced = replace(coerced, duration_ms=duration_ms)
    return coerced


def _unexpected_failure(
    checker: Checker,
    name: str,
    exc: Exception,
    duration_ms: int,
) -> CheckResult:
    LOGGER.debug("check %s raised:\n%s", name, traceback.format_exc())
    return CheckResult(
        name=name,
        status=CheckStatus.FAILURE,
        detail=f"Check '{name}' raised an unexpected error: {exc}",
        kind=getattr(checker, "kind", None),
        duration_ms=duration_ms,
    )


def _run_single_check(checker: Checker, index: int) -> CheckResult:
    name = _check_name(checker, index)
    start = time.perf_counter()
    try:
        result = checker.run()
    except Exception as exc:
        return _unexpected_failure(checker, name, exc, _duration_ms(start))
    return _coerce_result(checker, name, result, _duration_ms(start))


def _timed_out(checker: Checker, index: int, duration_ms: int) -> CheckResult:
    return CheckResult(
        name=_check_name(checker, index),
        status=CheckStatus.FAILURE,
        detail=TIMED_OUT_DETAIL,
        kind=getattr(checker, "kind", None),
        duration_ms=duration_ms,
    )


def _not_started(checker: Checker, index: int) -> CheckResult:
    return CheckResult(
        name=_check_name(checker, index),
        status=CheckStatus.SKIPPED,
        detail="not started before the run deadline",
        kind=getattr(checker, "kind", None),
    )


def run_checks(
    checkers: Sequence[Checker],
    options: ExecutorOptions | None = None,
) -> list[CheckResult]:
    """Execute checks with bounded concurrency, one result per check in order."""
    if not checkers:
        return []
    effective = options or ExecutorOptions()
    max_workers = max(1, effective.max_concurrency)
    if max_workers == 1 and effective.deadline is None:
        return [_run_single_check(checker, index) for index, checker in enumerate(checkers)]

    start = time.perf_counter()
    slots: list[CheckResult | None] = [None] * len(checkers)
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max_workers, thread_name_prefix="svcdoctor-check"
    )
    try:
        future_to_index: dict[concurrent.futures.Future[CheckResult], int] = {}
        for index, checker in enumerate(checkers):
            future = executor.submit(_run_single_check, checker, index)
            future_to_index[future] = index

        done, pending = concurrent.futures.wait(future_to_index, timeout=effective.deadline)
        for future in done:
            slots[future_to_index[future]] = future.result()
        for future in pending:
            index = future_to_index[future]
            if future.cancel():
                continue
            if future.done():
                # Finished after the wait returned.
                slots[index] = future.result()
                continue
            LOGGER.debug("check %s exceeded the run deadline", _check_name(checkers[index], index))
            slots[index] = _timed_out(checkers[index], index, _duration_ms(start))
    finally:
        # Never block on checks still running past the deadline.
        executor.shutdown(wait=False, cancel_futures=True)

    return [
        result if result is not None else _not_started(checkers[index], index)
        for index, result in enumerate(slots)
    ]


class Orchestrator:
    """Run checks, aggregate their results and hand them to a reporter."""

    def __init__(
        self,
        options: ExecutorOptions | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Store execution options and the timestamp source."""
        self._options = options or ExecutorOptions()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._phase = RunPhase.INIT

    @property
    def options(self) -> ExecutorOptions:
        """Return the execution options associated with this orchestrator."""
        return self._options

    @property
    def phase(self) -> RunPhase:
        """Return the current lifecycle phase."""
        return self._phase

    def _advance(self, phase: RunPhase) -> None:
        LOGGER.debug("phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase

    def run(
        self,
        checkers: Sequence[Checker],
        *,
        metadata: Mapping[str, object] | None = None,
    ) -> DiagnosticReport:
        """Run every checker once and build the report."""
        self._advance(RunPhase.RUNNING_CHECKS)
        captured_at = self._clock()
        start = time.perf_counter()
        results = run_checks(checkers, self._options)
        total_ms = _duration_ms(start)

        self._advance(RunPhase.AGGREGATING)
        run_metadata: dict[str, object] = {
            "duration_ms": total_ms,
            "check_count": len(results),
            "requested_checks": len(checkers),
            "concurrency": self._options.max_concurrency,
            "deadline": self._options.deadline,
        }
        if metadata:
            run_metadata.update(metadata)
        return DiagnosticReport(
            results=tuple(results),
            captured_at=captured_at,
            metadata=run_metadata,
        )

    def render(self, report: DiagnosticReport, reporter: SummaryReporter) -> str:
        """Render *report* and finish the run."""
        self._advance(RunPhase.REPORTING)
        text = reporter.render(report)
        self._advance(RunPhase.DONE)
        return text


__all__ = ["Orchestrator", "run_checks"]
