"""Rendering and serialisation of diagnostic reports."""
from __future__ import annotations

from collections.abc import Mapping, Sequence

from .models import (
    UNKNOWN_SENTINEL,
    CheckResult,
    CheckStatus,
    DiagnosticReport,
    SummaryEntry,
    count_statuses,
)

_STATUS_LABELS = {
    CheckStatus.SUCCESS: "PASS",
    CheckStatus.FAILURE: "FAIL",
    CheckStatus.SKIPPED: "SKIP",
}


class SummaryReporter:
    """Render a report as plain text: verbose trace, then enumerated summary.

    Rendering is a pure function of the report and never raises; results that
    are missing or malformed show up as ``Unknown``.
    """

    def __init__(self, entries: Sequence[SummaryEntry], *, title: str = "Diagnostics") -> None:
        """Store the summary entries in the order they must be printed."""
        self._entries = tuple(entries)
        self._title = title

    @property
    def entries(self) -> tuple[SummaryEntry, ...]:
        """Return the configured summary entries."""
        return self._entries

    def render(self, report: DiagnosticReport) -> str:
        """Return the full report text."""
        lines: list[str] = []
        lines.append(f"{self._title} captured at {_format_timestamp(report)}")
        totals = count_statuses(_safe_results(report))
        lines.append(
            "Totals: "
            f"pass={totals[CheckStatus.SUCCESS]} "
            f"fail={totals[CheckStatus.FAILURE]} "
            f"skip={totals[CheckStatus.SKIPPED]}"
        )
        lines.append("")
        for result in _safe_results(report):
            lines.extend(_render_result(result))
            lines.append("")
        lines.append("Diagnostic Summary:")
        lines.extend(self.summary_lines(report))
        return "\n".join(lines) + "\n"

    def summary_lines(self, report: DiagnosticReport) -> list[str]:
        """Return the enumerated ``<index>. <label>: <value>`` lines."""
        return [
            f"{index}. {entry.label}: {self.summary_value(report, entry)}"
            for index, entry in enumerate(self._entries, start=1)
        ]

    @staticmethod
    def summary_value(report: DiagnosticReport, entry: SummaryEntry) -> str:
        """Return the code or sentinel shown for *entry*."""
        try:
            result = report.get(entry.check)
        except Exception:  # noqa: BLE001 - rendering must not fail
            return UNKNOWN_SENTINEL
        if result is None:
            return UNKNOWN_SENTINEL
        if result.code:
            return result.code
        if result.status is CheckStatus.SUCCESS:
            return UNKNOWN_SENTINEL
        return entry.fallback


def _safe_results(report: DiagnosticReport) -> Sequence[object]:
    results = getattr(report, "results", None)
    if isinstance(results, Sequence):
        return results
    return ()


def _format_timestamp(report: DiagnosticReport) -> str:
    captured = getattr(report, "captured_at", None)
    isoformat = getattr(captured, "isoformat", None)
    if callable(isoformat):
        return str(isoformat(timespec="seconds"))
    return UNKNOWN_SENTINEL


def _render_result(result: object) -> list[str]:
    if not isinstance(result, CheckResult) or not isinstance(result.status, CheckStatus):
        return [f"[????] {UNKNOWN_SENTINEL}: malformed result {result!r}"]
    header = f"[{_STATUS_LABELS[result.status]}] {result.name}"
    if result.code:
        header = f"{header} ({result.code})"
    lines = [header]
    detail = str(result.detail or "").rstrip()
    for line in detail.splitlines() or [""]:
        lines.append(f"    {line}".rstrip())
    return lines


def _sanitize_payload(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize_payload(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_sanitize_payload(item) for item in value]
    return str(value)


def serialize_report(
    report: DiagnosticReport,
    entries: Sequence[SummaryEntry] = (),
) -> dict[str, object]:
    """Convert a report into a JSON-serialisable mapping."""
    results_payload: list[dict[str, object]] = []
    for result in _safe_results(report):
        if not isinstance(result, CheckResult):
            continue
        result_payload: dict[str, object] = {
            "name": result.name,
            "status": result.status.value,
            "detail": result.detail,
            "code": result.code,
        }
        if result.kind is not None:
            result_payload["kind"] = result.kind
        if result.duration_ms is not None:
            result_payload["duration_ms"] = result.duration_ms
        results_payload.append(result_payload)

    summary_payload = [
        {
            "index": index,
            "label": entry.label,
            "value": SummaryReporter.summary_value(report, entry),
        }
        for index, entry in enumerate(entries, start=1)
    ]
    totals = {
        status.value: count
        for status, count in count_statuses(_safe_results(report)).items()
    }
    return {
        "captured_at": _format_timestamp(report),
        "totals": totals,
        "results": results_payload,
        "summary": summary_payload,
        "metadata": _sanitize_payload(report.metadata) if report.metadata else {},
    }


__all__ = ["SummaryReporter", "serialize_report"]
