"""Container runtime provider backed by the ``docker`` CLI."""
from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

LOGGER = logging.getLogger(__name__)

_NOT_FOUND_MARKERS = ("no such container", "no such object", "is not running")
_DAEMON_MARKERS = (
    "cannot connect to the docker daemon",
    "permission denied while trying to connect",
    "error during connect",
)


class ContainerRuntimeError(RuntimeError):
    """Raised when container runtime operations fail."""


class ContainerRuntimeUnavailable(ContainerRuntimeError):
    """Raised when the runtime binary cannot be invoked at all."""


class ContainerNotFoundError(ContainerRuntimeError):
    """Raised when the target container does not exist or is not running."""


@dataclass(slots=True, frozen=True)
class ExecResult:
    """Output of a command executed inside a container."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        """Return ``True`` when the command exited successfully."""
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Return stdout, falling back to stderr when stdout is empty."""
        return (self.stdout or self.stderr).strip()


@dataclass(slots=True, frozen=True)
class ContainerState:
    """Subset of ``docker inspect`` ``.State`` relevant to diagnostics."""

    status: str
    running: bool
    started_at: str | None = None
    finished_at: str | None = None
    exit_code: int | None = None
    restart_count: int | None = None
    health: str | None = None
    error: str | None = None

    @classmethod
    def from_inspect(cls, payload: Mapping[str, object]) -> ContainerState:
        """Build a state from a single ``docker inspect`` document."""
        state = payload.get("State")
        if not isinstance(state, Mapping):
            raise ContainerRuntimeError("docker inspect output is missing the State block.")
        health_raw = state.get("Health")
        health = None
        if isinstance(health_raw, Mapping):
            health_status = health_raw.get("Status")
            health = str(health_status) if health_status else None
        restart_count = payload.get("RestartCount")
        exit_code = state.get("ExitCode")
        return cls(
            status=str(state.get("Status") or "unknown"),
            running=bool(state.get("Running", False)),
            started_at=_optional_str(state.get("StartedAt")),
            finished_at=_optional_str(state.get("FinishedAt")),
            exit_code=exit_code if isinstance(exit_code, int) else None,
            restart_count=restart_count if isinstance(restart_count, int) else None,
            health=health,
            error=_optional_str(state.get("Error")),
        )

    def describe(self) -> str:
        """Return a multi-line human readable summary."""
        lines = [f"Status: {self.status}", f"Running: {str(self.running).lower()}"]
        if self.started_at:
            lines.append(f"StartedAt: {self.started_at}")
        if self.finished_at and not self.running:
            lines.append(f"FinishedAt: {self.finished_at}")
        if self.exit_code is not None:
            lines.append(f"ExitCode: {self.exit_code}")
        if self.restart_count is not None:
            lines.append(f"RestartCount: {self.restart_count}")
        if self.health:
            lines.append(f"Health: {self.health}")
        if self.error:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines)


class ContainerRuntime(Protocol):
    """The narrow runtime surface consumed by container and log checks."""

    def exec_in_container(self, name: str, command: Sequence[str]) -> ExecResult:
        """Run *command* inside container *name*."""
        ...

    def inspect_container(self, name: str) -> ContainerState:
        """Return the state of container *name*."""
        ...

    def fetch_logs(self, name: str, tail_lines: int) -> str:
        """Return recent output of container *name*."""
        ...


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(slots=True)
class DockerRuntime:
    """Read-only access to containers through the docker CLI."""

    docker_bin: str = "docker"
    timeout: float = 15.0

    def exec_in_container(self, name: str, command: Sequence[str]) -> ExecResult:
        """Run *command* inside container *name* and capture its output.

        A non-zero exit of the command itself is returned, not raised. Runtime
        level failures (missing container, unreachable daemon) raise.
        """
        result = self._run([self.docker_bin, "exec", name, *command])
        if result.returncode != 0:
            _raise_for_daemon(result)
            if _looks_like_missing_container(result.stderr):
                raise ContainerNotFoundError(_error_text(result))
        return ExecResult(
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            exit_code=result.returncode,
        )

    def inspect_container(self, name: str) -> ContainerState:
        """Return the state of container *name*."""
        result = self._run([self.docker_bin, "inspect", "--type", "container", name])
        if result.returncode != 0:
            message = _error_text(result)
            _raise_for_daemon(result)
            if _looks_like_missing_container(message):
                raise ContainerNotFoundError(message)
            raise ContainerRuntimeError(
                f"{self.docker_bin} inspect failed (exit {result.returncode}): {message}"
            )
        try:
            documents = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            raise ContainerRuntimeError(f"Unable to parse docker inspect output: {exc}") from exc
        if not isinstance(documents, list) or not documents:
            raise ContainerNotFoundError(f"No such container: {name}")
        first = documents[0]
        if not isinstance(first, Mapping):
            raise ContainerRuntimeError("docker inspect returned an unexpected document.")
        return ContainerState.from_inspect(first)

    def fetch_logs(self, name: str, tail_lines: int) -> str:
        """Return the most recent *tail_lines* of container output."""
        result = self._run(
            [self.docker_bin, "logs", "--timestamps", "--tail", str(tail_lines), name]
        )
        if result.returncode != 0:
            message = _error_text(result)
            _raise_for_daemon(result)
            if _looks_like_missing_container(message):
                raise ContainerNotFoundError(message)
            raise ContainerRuntimeError(
                f"{self.docker_bin} logs failed (exit {result.returncode}): {message}"
            )
        # Containers write to both streams; docker relays them separately.
        return "\n".join(
            part.rstrip("\n") for part in (result.stdout, result.stderr) if part
        )

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        LOGGER.debug("running %s", " ".join(args))
        try:
            return subprocess.run(  # noqa: S603
                list(args),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ContainerRuntimeUnavailable(f"{args[0]} not found: {exc}") from exc
        except PermissionError as exc:
            raise ContainerRuntimeUnavailable(f"{args[0]} not executable: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ContainerRuntimeError(
                f"{' '.join(args[:3])} timed out after {self.timeout:g}s"
            ) from exc


def _looks_like_missing_container(message: str | None) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


def _raise_for_daemon(result: subprocess.CompletedProcess[str]) -> None:
    # The docker CLI reports daemon connection problems on stderr.
    lowered = (result.stderr or "").lower()
    if any(marker in lowered for marker in _DAEMON_MARKERS):
        raise ContainerRuntimeUnavailable(_error_text(result))


def _error_text(result: subprocess.CompletedProcess[str]) -> str:
    stdout = result.stdout or ""
    stderr = result.stderr or ""
    return stderr.strip() or stdout.strip() or "no output"


__all__ = [
    "ContainerNotFoundError",
    "ContainerRuntime",
    "ContainerRuntimeError",
    "ContainerRuntimeUnavailable",
    "ContainerState",
    "DockerRuntime",
    "ExecResult",
]
