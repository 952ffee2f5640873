"""Tests for report rendering and serialisation."""
from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

from svcdoctor.config import DiagnosticsConfig
from svcdoctor.doctor import (
    CheckResult,
    CheckStatus,
    DiagnosticReport,
    ExecutorOptions,
    Orchestrator,
    SummaryEntry,
    SummaryReporter,
    collect_checks,
    serialize_report,
    summary_entries,
)
from tests.fakes import FakeAccelerator, FakeHttpClient, FakeRuntime

FIXED_TIME = datetime(2026, 10, 19, 8, 30, 15, tzinfo=UTC)


def _run(
    config: DiagnosticsConfig,
    runtime: FakeRuntime,
    http: FakeHttpClient,
    accelerator: FakeAccelerator,
    *,
    captured_at: datetime = FIXED_TIME,
    max_concurrency: int = 4,
) -> tuple[DiagnosticReport, str]:
    checks = collect_checks(
        config,
        runtime=runtime,
        http_client=http,  # type: ignore[arg-type]
        accelerator=accelerator,  # type: ignore[arg-type]
    )
    orchestrator = Orchestrator(
        ExecutorOptions(max_concurrency=max_concurrency), clock=lambda: captured_at
    )
    report = orchestrator.run(checks)
    text = orchestrator.render(report, SummaryReporter(summary_entries(config)))
    return report, text


def test_end_to_end_summary(
    diagnostics_config: DiagnosticsConfig,
    fake_runtime: FakeRuntime,
    fake_http: FakeHttpClient,
    fake_accelerator: FakeAccelerator,
) -> None:
    """The summary enumerates endpoint codes and the container state."""
    _report, text = _run(diagnostics_config, fake_runtime, fake_http, fake_accelerator)

    summary = text.split("Diagnostic Summary:\n", 1)[1].splitlines()
    assert summary == [
        "1. Host Root: 200",
        "2. Host API: 200",
        "3. Production Root: Failed",
        "4. Production API: 404",
        "5. Container Status: running",
    ]


def test_verbose_section_precedes_summary(
    diagnostics_config: DiagnosticsConfig,
    fake_runtime: FakeRuntime,
    fake_http: FakeHttpClient,
    fake_accelerator: FakeAccelerator,
) -> None:
    """Every check appears in the verbose section in registration order."""
    report, text = _run(diagnostics_config, fake_runtime, fake_http, fake_accelerator)

    lines = text.splitlines()
    assert lines[0] == "Diagnostics captured at 2026-10-19T08:30:15+00:00"
    assert lines[1].startswith("Totals: pass=")
    headers = [line for line in lines if line.startswith("[")]
    assert [header.split()[1] for header in headers] == [r.name for r in report.results]
    assert "[PASS] container:status (running)" in headers
    assert "[FAIL] endpoint:production-root (Failed)" in headers
    assert "[SKIP] logs:proxy-error" in headers
    assert "[SKIP] logs:tunnel" in headers
    assert "    === /app/webxr.log ===" in lines
    assert text.index("[PASS] hardware:accelerator") < text.index("Diagnostic Summary:")


def test_repeated_runs_are_identical_except_timestamp(
    diagnostics_config: DiagnosticsConfig,
    fake_runtime: FakeRuntime,
    fake_http: FakeHttpClient,
    fake_accelerator: FakeAccelerator,
) -> None:
    """Two runs against unchanged state differ only in the timestamp line."""
    _first, first = _run(diagnostics_config, fake_runtime, fake_http, fake_accelerator)
    _second, second = _run(
        diagnostics_config,
        fake_runtime,
        fake_http,
        fake_accelerator,
        captured_at=FIXED_TIME + timedelta(minutes=5),
        max_concurrency=1,
    )

    assert first != second
    assert first.splitlines()[1:] == second.splitlines()[1:]


def test_nonexistent_container_summary(
    diagnostics_config: DiagnosticsConfig,
    fake_http: FakeHttpClient,
    fake_accelerator: FakeAccelerator,
) -> None:
    """A missing container reports Not Found and the run still completes."""
    report, text = _run(diagnostics_config, FakeRuntime(), fake_http, fake_accelerator)

    assert text.endswith("5. Container Status: Not Found\n")
    assert len(report.results) == 14
    assert report.get("logs:tunnel").status is CheckStatus.SKIPPED  # type: ignore[union-attr]


def test_summary_value_fallbacks() -> None:
    """Missing results render as Unknown and uncoded failures use the fallback."""
    report = DiagnosticReport(
        results=(
            CheckResult(name="endpoint:host-root", status=CheckStatus.FAILURE, detail="x"),
            CheckResult(name="container:status", status=CheckStatus.SUCCESS, detail="y"),
        ),
        captured_at=FIXED_TIME,
    )
    reporter = SummaryReporter(
        [
            SummaryEntry("Host Root", "endpoint:host-root"),
            SummaryEntry("Host API", "endpoint:host-api"),
            SummaryEntry("Container Status", "container:status", "Not Found"),
        ]
    )

    assert reporter.summary_lines(report) == [
        "1. Host Root: Failed",
        "2. Host API: Unknown",
        "3. Container Status: Unknown",
    ]


def test_render_tolerates_malformed_results() -> None:
    """Rendering never raises on results it does not understand."""
    report = DiagnosticReport(
        results=("garbage",),  # type: ignore[arg-type]
        captured_at=None,  # type: ignore[arg-type]
    )

    text = SummaryReporter([SummaryEntry("Host Root", "endpoint:host-root")]).render(report)

    assert text.startswith("Diagnostics captured at Unknown\n")
    assert "[????] Unknown: malformed result 'garbage'" in text
    assert text.endswith("1. Host Root: Unknown\n")


def test_serialize_report(
    diagnostics_config: DiagnosticsConfig,
    fake_runtime: FakeRuntime,
    fake_http: FakeHttpClient,
    fake_accelerator: FakeAccelerator,
) -> None:
    """The JSON payload carries results, totals and the enumerated summary."""
    report, _text = _run(diagnostics_config, fake_runtime, fake_http, fake_accelerator)

    payload = serialize_report(report, summary_entries(diagnostics_config))

    json.dumps(payload)
    assert payload["captured_at"] == "2026-10-19T08:30:15+00:00"
    assert [item["value"] for item in payload["summary"]] == [
        "200",
        "200",
        "Failed",
        "404",
        "running",
    ]
    assert payload["summary"][0] == {"index": 1, "label": "Host Root", "value": "200"}
    assert len(payload["results"]) == len(report.results)
    assert payload["results"][0]["name"] == "container:status"
    assert payload["results"][0]["status"] == "success"
    assert payload["results"][0]["kind"] == "container"
    assert sum(payload["totals"].values()) == len(report.results)
    assert payload["metadata"]["check_count"] == len(report.results)
