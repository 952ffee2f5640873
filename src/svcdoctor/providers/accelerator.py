"""Accelerator (GPU) status query."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from .docker import ContainerRuntime, ContainerRuntimeError

LOGGER = logging.getLogger(__name__)


class AcceleratorError(RuntimeError):
    """Raised when the accelerator query tool cannot be used."""


@dataclass(slots=True, frozen=True)
class DeviceQuery:
    """Summary text from the query tool, or the reason it failed."""

    summary: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when the query produced a device summary."""
        return self.error is None


@dataclass(slots=True)
class AcceleratorQuery:
    """Run the accelerator query tool inside the container or on the host."""

    runtime: ContainerRuntime
    container_name: str
    command: Sequence[str] = ("nvidia-smi",)
    in_container: bool = True
    timeout: float = 15.0

    def query_devices(self) -> DeviceQuery:
        """Run the query once and return its summary or error."""
        try:
            stdout, stderr, exit_code = self._execute()
        except AcceleratorError as exc:
            return DeviceQuery(summary="", error=str(exc))
        output = (stdout or stderr).strip()
        if exit_code != 0:
            return DeviceQuery(
                summary=output,
                error=f"{self.command[0]} exited with status {exit_code}",
            )
        if not output:
            return DeviceQuery(summary="", error=f"{self.command[0]} produced no output")
        return DeviceQuery(summary=output)

    def _execute(self) -> tuple[str, str, int]:
        if self.in_container:
            try:
                result = self.runtime.exec_in_container(self.container_name, self.command)
            except ContainerRuntimeError as exc:
                raise AcceleratorError(str(exc)) from exc
            return result.stdout, result.stderr, result.exit_code
        LOGGER.debug("running %s on host", " ".join(self.command))
        try:
            completed = subprocess.run(  # noqa: S603
                list(self.command),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise AcceleratorError(f"{self.command[0]} not available: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise AcceleratorError(
                f"{self.command[0]} timed out after {self.timeout:g}s"
            ) from exc
        return completed.stdout or "", completed.stderr or "", completed.returncode


__all__ = ["AcceleratorError", "AcceleratorQuery", "DeviceQuery"]
