"""Tests for the docker CLI runtime provider."""
from __future__ import annotations

import json
import subprocess
from collections.abc import Sequence

import pytest

from svcdoctor.providers.docker import (
    ContainerNotFoundError,
    ContainerRuntimeError,
    ContainerRuntimeUnavailable,
    ContainerState,
    DockerRuntime,
)


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _patch_run(
    monkeypatch: pytest.MonkeyPatch,
    result: DummyResult | BaseException,
) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        calls.append(list(args))
        assert kwargs["capture_output"] is True
        assert kwargs["check"] is False
        if isinstance(result, BaseException):
            raise result
        return result

    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


INSPECT_PAYLOAD = [
    {
        "Name": "/logseq-spring-thing-webxr",
        "RestartCount": 2,
        "State": {
            "Status": "running",
            "Running": True,
            "StartedAt": "2026-10-19T08:00:00.123456789Z",
            "FinishedAt": "0001-01-01T00:00:00Z",
            "ExitCode": 0,
            "Error": "",
            "Health": {"Status": "healthy"},
        },
    }
]


def test_inspect_container_parses_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """docker inspect output is reduced to a ContainerState."""
    calls = _patch_run(monkeypatch, DummyResult(stdout=json.dumps(INSPECT_PAYLOAD)))

    state = DockerRuntime().inspect_container("logseq-spring-thing-webxr")

    assert calls == [["docker", "inspect", "--type", "container", "logseq-spring-thing-webxr"]]
    assert state.status == "running"
    assert state.running is True
    assert state.restart_count == 2
    assert state.health == "healthy"
    assert state.error is None
    assert state.describe().splitlines() == [
        "Status: running",
        "Running: true",
        "StartedAt: 2026-10-19T08:00:00.123456789Z",
        "ExitCode: 0",
        "RestartCount: 2",
        "Health: healthy",
    ]


def test_inspect_missing_container_raises_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing container maps to ContainerNotFoundError."""
    _patch_run(
        monkeypatch,
        DummyResult(returncode=1, stdout="[]", stderr="Error: No such container: ghost"),
    )

    with pytest.raises(ContainerNotFoundError, match="No such container"):
        DockerRuntime().inspect_container("ghost")


def test_inspect_other_failures_raise_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """Daemon errors are runtime errors, not not-found errors."""
    _patch_run(
        monkeypatch,
        DummyResult(returncode=1, stderr="Error response from daemon: conflict: unable to inspect"),
    )

    with pytest.raises(ContainerRuntimeError) as excinfo:
        DockerRuntime().inspect_container("web")

    assert not isinstance(excinfo.value, ContainerNotFoundError)
    assert "exit 1" in str(excinfo.value)


def test_inspect_rejects_unparseable_output(monkeypatch: pytest.MonkeyPatch) -> None:
    """Garbage on stdout is reported instead of crashing."""
    _patch_run(monkeypatch, DummyResult(stdout="not json"))

    with pytest.raises(ContainerRuntimeError, match="Unable to parse"):
        DockerRuntime().inspect_container("web")


def test_exec_returns_nonzero_exit_without_raising(monkeypatch: pytest.MonkeyPatch) -> None:
    """Command failures inside the container are returned to the caller."""
    calls = _patch_run(
        monkeypatch,
        DummyResult(returncode=1, stderr="tail: cannot open '/app/x.log' for reading"),
    )

    result = DockerRuntime(docker_bin="/usr/bin/docker").exec_in_container(
        "web", ("tail", "-n", "20", "--", "/app/x.log")
    )

    assert calls == [["/usr/bin/docker", "exec", "web", "tail", "-n", "20", "--", "/app/x.log"]]
    assert result.ok is False
    assert result.exit_code == 1
    assert result.output == "tail: cannot open '/app/x.log' for reading"


def test_exec_in_stopped_container_raises_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    """Exec against a stopped container is a not-found condition."""
    _patch_run(
        monkeypatch,
        DummyResult(
            returncode=1,
            stderr="Error response from daemon: Container abc is not running",
        ),
    )

    with pytest.raises(ContainerNotFoundError):
        DockerRuntime().exec_in_container("web", ("ps", "aux"))


DAEMON_DOWN = (
    "Cannot connect to the Docker daemon at unix:///var/run/docker.sock. "
    "Is the docker daemon running?"
)
DAEMON_FORBIDDEN = (
    "permission denied while trying to connect to the Docker daemon socket at "
    "unix:///var/run/docker.sock"
)


@pytest.mark.parametrize("stderr", [DAEMON_DOWN, DAEMON_FORBIDDEN])
def test_exec_with_unreachable_daemon_is_unavailable(
    monkeypatch: pytest.MonkeyPatch, stderr: str
) -> None:
    """Daemon connection errors raise instead of looking like a failed command."""
    _patch_run(monkeypatch, DummyResult(returncode=1, stderr=stderr))

    with pytest.raises(ContainerRuntimeUnavailable) as excinfo:
        DockerRuntime().exec_in_container("web", ("tail", "-n", "20", "--", "/app/webxr.log"))

    assert str(excinfo.value) == stderr


@pytest.mark.parametrize("method", ["inspect", "logs"])
def test_other_commands_with_unreachable_daemon_are_unavailable(
    monkeypatch: pytest.MonkeyPatch, method: str
) -> None:
    """Inspect and logs map daemon connection errors the same way."""
    _patch_run(monkeypatch, DummyResult(returncode=1, stderr=DAEMON_DOWN))
    runtime = DockerRuntime()

    with pytest.raises(ContainerRuntimeUnavailable):
        if method == "inspect":
            runtime.inspect_container("web")
        else:
            runtime.fetch_logs("web", 20)


def test_fetch_logs_joins_both_streams(monkeypatch: pytest.MonkeyPatch) -> None:
    """Container stdout and stderr are both returned."""
    calls = _patch_run(monkeypatch, DummyResult(stdout="out line\n", stderr="err line\n"))

    text = DockerRuntime().fetch_logs("web", 20)

    assert calls == [["docker", "logs", "--timestamps", "--tail", "20", "web"]]
    assert text == "out line\nerr line"


def test_missing_docker_binary_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing docker binary raises ContainerRuntimeUnavailable."""
    _patch_run(monkeypatch, FileNotFoundError(2, "No such file or directory"))

    with pytest.raises(ContainerRuntimeUnavailable, match="docker not found"):
        DockerRuntime().inspect_container("web")


def test_command_timeout_raises_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """Hung docker invocations are bounded by the configured timeout."""
    _patch_run(monkeypatch, subprocess.TimeoutExpired(cmd="docker", timeout=2.0))

    with pytest.raises(ContainerRuntimeError, match="timed out after 2s"):
        DockerRuntime(timeout=2.0).exec_in_container("web", ("ps", "aux"))


def test_state_from_inspect_requires_state_block() -> None:
    """Documents without a State block are rejected."""
    with pytest.raises(ContainerRuntimeError):
        ContainerState.from_inspect({"Name": "/web"})


def test_describe_stopped_container_includes_finish_time() -> None:
    """Stopped containers report when they finished."""
    state = ContainerState.from_inspect(
        {
            "State": {
                "Status": "exited",
                "Running": False,
                "FinishedAt": "2026-10-19T09:00:00Z",
                "ExitCode": 137,
                "Error": "OOMKilled",
            }
        }
    )

    assert state.describe().splitlines() == [
        "Status: exited",
        "Running: false",
        "FinishedAt: 2026-10-19T09:00:00Z",
        "ExitCode: 137",
        "Error: OOMKilled",
    ]
