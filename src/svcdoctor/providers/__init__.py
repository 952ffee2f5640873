"""Provider interfaces for svcdoctor."""
from __future__ import annotations

from .accelerator import AcceleratorError, AcceleratorQuery, DeviceQuery
from .docker import (
    ContainerNotFoundError,
    ContainerRuntime,
    ContainerRuntimeError,
    ContainerRuntimeUnavailable,
    ContainerState,
    DockerRuntime,
    ExecResult,
)
from .http import HttpClient, HttpOutcome

__all__ = [
    "AcceleratorError",
    "AcceleratorQuery",
    "ContainerNotFoundError",
    "ContainerRuntime",
    "ContainerRuntimeError",
    "ContainerRuntimeUnavailable",
    "ContainerState",
    "DeviceQuery",
    "DockerRuntime",
    "ExecResult",
    "HttpClient",
    "HttpOutcome",
]
