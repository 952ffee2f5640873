"""Diagnostic checks and their registration entry point."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..config import DiagnosticsConfig, ProbeTarget
from ..providers.accelerator import AcceleratorQuery
from ..providers.docker import (
    ContainerNotFoundError,
    ContainerRuntime,
    ContainerRuntimeError,
    ExecResult,
)
from ..providers.http import HttpClient
from .models import (
    FAILED_SENTINEL,
    NOT_FOUND_SENTINEL,
    CheckDefinition,
    Checker,
    CheckKind,
    CheckResult,
    CheckStatus,
    SummaryEntry,
)

CONTAINER_STATUS_CHECK = "container:status"
ACCELERATOR_CHECK = "hardware:accelerator"
NOT_FOUND_PLACEHOLDER = "not found"

# Exit codes docker exec uses when the command is missing from the image.
_COMMAND_MISSING_CODES = {126, 127}
_GLOB_CHARS = re.compile(r"[*?\[]")
_SAFE_GLOB = re.compile(r"^[A-Za-z0-9_./*?\[\]-]+$")


def collect_checks(
    config: DiagnosticsConfig,
    *,
    runtime: ContainerRuntime,
    http_client: HttpClient,
    accelerator: AcceleratorQuery,
) -> tuple[Checker, ...]:
    """Return the checks to run, in reporting order."""
    inspector = ContainerInspector(
        runtime=runtime,
        container_name=config.container_name,
        service_process=config.service_process,
    )
    collector = LogCollector(
        runtime=runtime,
        container_name=config.container_name,
        max_lines=config.max_lines,
    )
    prober = EndpointProber(http_client)

    checks: list[Checker] = []
    checks.extend(inspector.checks())
    checks.extend(collector.checks(config.logs.groups(), tunnel=config.tunnel_container))
    checks.extend(prober.checks(config.probe_targets()))
    checks.append(HardwareProbe(accelerator))
    return tuple(checks)


def summary_entries(config: DiagnosticsConfig) -> tuple[SummaryEntry, ...]:
    """Return the enumerated summary lines in configured order."""
    entries = [
        SummaryEntry(label=target.label, check=target.check_name, fallback=FAILED_SENTINEL)
        for target in config.probe_targets()
    ]
    entries.append(
        SummaryEntry(
            label="Container Status",
            check=CONTAINER_STATUS_CHECK,
            fallback=NOT_FOUND_SENTINEL,
        )
    )
    return tuple(entries)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_check(
    name: str,
    kind: CheckKind,
    handler: Callable[[], CheckResult],
) -> CheckDefinition:
    return CheckDefinition(name=name, kind=kind, run=handler)


def _success(name: str, kind: CheckKind, detail: str, code: str | None = None) -> CheckResult:
    return CheckResult(name=name, status=CheckStatus.SUCCESS, detail=detail, code=code, kind=kind)


def _failure(name: str, kind: CheckKind, detail: str, code: str | None = None) -> CheckResult:
    return CheckResult(name=name, status=CheckStatus.FAILURE, detail=detail, code=code, kind=kind)


def _skipped(name: str, kind: CheckKind, detail: str) -> CheckResult:
    return CheckResult(name=name, status=CheckStatus.SKIPPED, detail=detail, kind=kind)


# ---------------------------------------------------------------------------
# Container inspection
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ContainerInspector:
    """Read-only queries against the service container."""

    runtime: ContainerRuntime
    container_name: str
    service_process: str = "webxr"

    def __post_init__(self) -> None:
        """Reject an empty container name."""
        if not self.container_name.strip():
            raise ValueError("container_name must be a non-empty string.")

    def checks(self) -> tuple[CheckDefinition, ...]:
        """Return the inspection sub-checks as check definitions."""
        return (
            _make_check(CONTAINER_STATUS_CHECK, "container", self.status),
            _make_check("container:processes", "container", self.processes),
            _make_check("container:ports", "container", self.listening_ports),
            _make_check("container:service-process", "container", self.find_service_process),
        )

    def inspect(self) -> tuple[CheckResult, ...]:
        """Run every sub-check sequentially."""
        return tuple(check.run() for check in self.checks())

    def status(self) -> CheckResult:
        """Report the container state (running, exited, ...)."""
        name = CONTAINER_STATUS_CHECK
        try:
            state = self.runtime.inspect_container(self.container_name)
        except ContainerNotFoundError as exc:
            return _failure(
                name,
                "container",
                f"Container '{self.container_name}' not found: {exc}",
                code=NOT_FOUND_SENTINEL,
            )
        except ContainerRuntimeError as exc:
            return _failure(name, "container", f"Could not inspect container: {exc}")
        if state.running:
            return _success(name, "container", state.describe(), code=state.status)
        return _failure(name, "container", state.describe(), code=state.status)

    def processes(self) -> CheckResult:
        """List processes running inside the container."""
        return self._exec_check(
            "container:processes",
            ("ps", "aux"),
            failure="Could not check processes",
        )

    def listening_ports(self) -> CheckResult:
        """List listening sockets, falling back to netstat when ss is absent."""
        name = "container:ports"
        try:
            result = self.runtime.exec_in_container(self.container_name, ("ss", "-tulpn"))
            if result.exit_code in _COMMAND_MISSING_CODES:
                result = self.runtime.exec_in_container(
                    self.container_name, ("netstat", "-tulpn")
                )
        except ContainerRuntimeError as exc:
            return _failure(name, "container", f"Could not check ports: {exc}")
        return self._from_exec(name, result, failure="Could not check ports")

    def find_service_process(self) -> CheckResult:
        """Check that the named service process is alive."""
        name = "container:service-process"
        missing = f"No {self.service_process} process found"
        try:
            result = self.runtime.exec_in_container(
                self.container_name, ("pgrep", "-a", self.service_process)
            )
        except ContainerRuntimeError as exc:
            return _failure(name, "container", f"{missing}: {exc}")
        if not result.ok:
            return _failure(name, "container", missing)
        return _success(name, "container", result.output)

    def _exec_check(self, name: str, command: Sequence[str], *, failure: str) -> CheckResult:
        try:
            result = self.runtime.exec_in_container(self.container_name, command)
        except ContainerRuntimeError as exc:
            return _failure(name, "container", f"{failure}: {exc}")
        return self._from_exec(name, result, failure=failure)

    @staticmethod
    def _from_exec(name: str, result: ExecResult, *, failure: str) -> CheckResult:
        if not result.ok:
            output = result.output or "no output"
            return _failure(name, "container", f"{failure} (exit {result.exit_code}): {output}")
        return _success(name, "container", result.output or "(no output)")


# ---------------------------------------------------------------------------
# Log collection
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class LogCollector:
    """Tail log files and container output without failing on missing sources."""

    runtime: ContainerRuntime
    container_name: str
    max_lines: int = 20

    def __post_init__(self) -> None:
        """Require a positive line bound."""
        if self.max_lines <= 0:
            raise ValueError(f"max_lines must be positive. Got {self.max_lines}.")

    def checks(
        self,
        groups: Sequence[tuple[str, Sequence[str]]],
        *,
        tunnel: str | None = None,
    ) -> tuple[CheckDefinition, ...]:
        """Return one check per path group plus container output checks."""
        checks = [
            _make_check(name, "logs", self._bind_tail(name, paths))
            for name, paths in groups
        ]
        checks.append(_make_check("logs:container", "logs", self.container_output))
        if tunnel:
            checks.append(
                _make_check("logs:tunnel", "logs", lambda: self.tunnel_output(tunnel))
            )
        return tuple(checks)

    def _bind_tail(self, name: str, paths: Sequence[str]) -> Callable[[], CheckResult]:
        def _run() -> CheckResult:
            return self.tail(name, paths)

        return _run

    def tail(self, name: str, paths: Sequence[str]) -> CheckResult:
        """Tail each path; missing ones get a ``not found`` placeholder."""
        if not paths:
            return _skipped(name, "logs", "No log paths configured.")
        sections: list[str] = []
        found = 0
        try:
            for path in self._expand(paths):
                result = self.runtime.exec_in_container(
                    self.container_name,
                    ("tail", "-n", str(self.max_lines), "--", path),
                )
                if result.ok:
                    found += 1
                    body = result.stdout.rstrip("\n") or "(empty)"
                else:
                    body = NOT_FOUND_PLACEHOLDER
                sections.append(f"=== {path} ===\n{body}")
        except ContainerRuntimeError as exc:
            return _failure(name, "logs", f"Could not read logs: {exc}")
        detail = "\n".join(sections)
        if found:
            return _success(name, "logs", detail)
        return _skipped(name, "logs", detail)

    def container_output(self) -> CheckResult:
        """Return recent container stdout/stderr."""
        return self._fetch("logs:container", self.container_name)

    def tunnel_output(self, tunnel: str) -> CheckResult:
        """Return recent tunnel output, skipping when the tunnel is down."""
        name = "logs:tunnel"
        skip = f"Skipping {tunnel} logs: container not running."
        try:
            state = self.runtime.inspect_container(tunnel)
        except ContainerNotFoundError:
            return _skipped(name, "logs", skip)
        except ContainerRuntimeError as exc:
            return _failure(name, "logs", f"Could not inspect {tunnel}: {exc}")
        if not state.running:
            return _skipped(name, "logs", skip)
        return self._fetch(name, tunnel)

    def _fetch(self, name: str, container: str) -> CheckResult:
        try:
            text = self.runtime.fetch_logs(container, self.max_lines)
        except ContainerNotFoundError as exc:
            return _failure(
                name, "logs", f"Container '{container}' not found: {exc}", code=NOT_FOUND_SENTINEL
            )
        except ContainerRuntimeError as exc:
            return _failure(name, "logs", f"Could not fetch logs for {container}: {exc}")
        return _success(name, "logs", text.strip() or "(no output)")

    def _expand(self, paths: Sequence[str]) -> list[str]:
        """Expand glob patterns inside the container, de-duplicating in order."""
        expanded: list[str] = []
        seen: set[str] = set()
        for path in paths:
            candidates = [path]
            if _GLOB_CHARS.search(path) and _SAFE_GLOB.match(path):
                candidates = self._glob(path) or [path]
            for candidate in candidates:
                if candidate not in seen:
                    seen.add(candidate)
                    expanded.append(candidate)
        return expanded

    def _glob(self, pattern: str) -> list[str]:
        script = f'for f in {pattern}; do [ -f "$f" ] && printf "%s\\n" "$f"; done; true'
        result = self.runtime.exec_in_container(self.container_name, ("sh", "-c", script))
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Endpoint probes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class EndpointProber:
    """Issue bounded GET requests and record the observed status code."""

    client: HttpClient

    def checks(self, targets: Sequence[ProbeTarget]) -> tuple[CheckDefinition, ...]:
        """Return one check per target."""
        return tuple(
            _make_check(target.check_name, "endpoint", self._bind(target))
            for target in targets
        )

    def _bind(self, target: ProbeTarget) -> Callable[[], CheckResult]:
        def _run() -> CheckResult:
            return self.probe(target)

        return _run

    def probe(self, target: ProbeTarget) -> CheckResult:
        """Probe *target*; any HTTP response counts as a successful probe."""
        name = target.check_name
        outcome = self.client.get(target.url, target.timeout_ms)
        if outcome.status_code is not None:
            code = str(outcome.status_code)
            return _success(
                name,
                "endpoint",
                f"{target.label} ({target.url}): server responded with HTTP {code}",
                code=code,
            )
        if outcome.timed_out:
            detail = f"timed out after {target.timeout_ms} ms"
        else:
            detail = "could not connect"
        if outcome.error:
            detail = f"{detail}: {outcome.error}"
        return _failure(
            name,
            "endpoint",
            f"{target.label} ({target.url}): {detail}",
            code=FAILED_SENTINEL,
        )


# ---------------------------------------------------------------------------
# Hardware
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class HardwareProbe:
    """Single accelerator availability query."""

    query: AcceleratorQuery
    name: str = ACCELERATOR_CHECK
    kind: CheckKind = "hardware"

    def run(self) -> CheckResult:
        """Query the accelerator once; no retries."""
        devices = self.query.query_devices()
        if devices.ok:
            return _success(self.name, "hardware", devices.summary)
        detail = "could not access accelerator"
        if devices.error:
            detail = f"{detail}: {devices.error}"
        return _failure(self.name, "hardware", detail)


__all__ = [
    "ACCELERATOR_CHECK",
    "CONTAINER_STATUS_CHECK",
    "ContainerInspector",
    "EndpointProber",
    "HardwareProbe",
    "LogCollector",
    "collect_checks",
    "summary_entries",
]
