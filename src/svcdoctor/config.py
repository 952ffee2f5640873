"""Configuration loader for svcdoctor.

Configuration values are resolved once per invocation from several layers:

1. Built-in defaults describing the production deployment.
2. ``/etc/svcdoctor/config.yml`` (or an override path).
3. Environment variables prefixed with ``SVCDOCTOR_``.
4. Explicit overrides supplied programmatically (used for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export SVCDOCTOR_HOST_PORT=4100
    export SVCDOCTOR_EXECUTOR__MAX_CONCURRENCY=1

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
lists are parsed naturally. The resulting configuration is exposed as
immutable ``dataclasses`` that are shared read-only by every check.
"""
from __future__ import annotations

import os
import re
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast
from urllib.parse import urlsplit

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover
    raise RuntimeError(
        "PyYAML is required to load svcdoctor configuration. Install with "
        "`pip install svcdoctor` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "SVCDOCTOR_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ProbeTarget:
    """An HTTP endpoint to probe, identified by its label."""

    label: str
    url: str
    timeout_ms: int

    @property
    def check_name(self) -> str:
        """Return the check name used for this target in reports."""
        slug = _SLUG_PATTERN.sub("-", self.label.lower()).strip("-")
        return f"endpoint:{slug}"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"label": self.label, "url": self.url, "timeout_ms": self.timeout_ms}


@dataclass(frozen=True)
class LogSourcesConfig:
    """Log files tailed inside the container, grouped by source."""

    service: tuple[str, ...] = ("/app/webxr.log", "/app/*.log")
    proxy_access: tuple[str, ...] = ("/var/log/nginx/access.log",)
    proxy_error: tuple[str, ...] = ("/var/log/nginx/error.log",)

    def groups(self) -> tuple[tuple[str, tuple[str, ...]], ...]:
        """Return ``(check name, paths)`` pairs in reporting order."""
        return (
            ("logs:service", self.service),
            ("logs:proxy-access", self.proxy_access),
            ("logs:proxy-error", self.proxy_error),
        )

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "service": list(self.service),
            "proxy_access": list(self.proxy_access),
            "proxy_error": list(self.proxy_error),
        }


@dataclass(frozen=True)
class AcceleratorConfig:
    """How the accelerator status query is executed."""

    command: tuple[str, ...] = ("nvidia-smi",)
    in_container: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"command": list(self.command), "in_container": self.in_container}


@dataclass(frozen=True)
class ExecutorConfig:
    """Runtime tunables for executing checks."""

    max_concurrency: int = 4
    exec_timeout: float = 15.0
    deadline: float | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "max_concurrency": self.max_concurrency,
            "exec_timeout": self.exec_timeout,
            "deadline": self.deadline,
        }


@dataclass(frozen=True)
class DiagnosticsConfig:
    """Resolved configuration values for a diagnostics run."""

    config_file: Path
    container_name: str
    service_process: str
    tunnel_container: str | None
    host_port: int
    production_host: str
    api_path: str
    local_timeout_ms: int
    remote_timeout_ms: int
    max_lines: int
    docker_bin: str
    logs_dir: Path | None
    logs: LogSourcesConfig
    accelerator: AcceleratorConfig
    executor: ExecutorConfig

    @property
    def log_paths(self) -> frozenset[str]:
        """Return every configured log path across all groups."""
        return frozenset(
            path for _name, paths in self.logs.groups() for path in paths
        )

    def probe_targets(self) -> tuple[ProbeTarget, ...]:
        """Return the canonical endpoint targets in summary order."""
        local_base = f"http://localhost:{self.host_port}"
        remote_base = f"https://{self.production_host}"
        targets = (
            ProbeTarget("Host Root", f"{local_base}/", self.local_timeout_ms),
            ProbeTarget("Host API", f"{local_base}{self.api_path}", self.local_timeout_ms),
            ProbeTarget("Production Root", f"{remote_base}/", self.remote_timeout_ms),
            ProbeTarget(
                "Production API",
                f"{remote_base}{self.api_path}",
                self.remote_timeout_ms,
            ),
        )
        for target in targets:
            validate_target_url(target.url, target.label)
        return targets

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "container_name": self.container_name,
            "service_process": self.service_process,
            "tunnel_container": self.tunnel_container,
            "host_port": self.host_port,
            "production_host": self.production_host,
            "api_path": self.api_path,
            "local_timeout_ms": self.local_timeout_ms,
            "remote_timeout_ms": self.remote_timeout_ms,
            "max_lines": self.max_lines,
            "docker_bin": self.docker_bin,
            "logs_dir": str(self.logs_dir) if self.logs_dir is not None else None,
            "logs": self.logs.to_dict(),
            "accelerator": self.accelerator.to_dict(),
            "executor": self.executor.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/svcdoctor/config.yml",
    "container_name": "logseq-spring-thing-webxr",
    "service_process": "webxr",
    "tunnel_container": "cloudflared-tunnel",
    "host_port": 4000,
    "production_host": "www.visionflow.info",
    "api_path": "/api/settings",
    "local_timeout_ms": 5000,
    "remote_timeout_ms": 10000,
    "max_lines": 20,
    "docker_bin": "docker",
    "logs_dir": None,
    "logs": {
        "service": ["/app/webxr.log", "/app/*.log"],
        "proxy_access": ["/var/log/nginx/access.log"],
        "proxy_error": ["/var/log/nginx/error.log"],
    },
    "accelerator": {
        "command": ["nvidia-smi"],
        "in_container": True,
    },
    "executor": {
        "max_concurrency": 4,
        "exec_timeout": 15.0,
        "deadline": None,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_NESTED_KEYS: dict[str, set[str]] = {
    "logs": {"service", "proxy_access", "proxy_error"},
    "accelerator": {"command", "in_container"},
    "executor": {"max_concurrency", "exec_timeout", "deadline"},
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> DiagnosticsConfig:
    """Load and merge configuration sources into a :class:`DiagnosticsConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_config(merged)


def validate_target_url(url: str, label: str) -> None:
    """Raise :class:`ConfigError` unless *url* is an absolute http(s) URL."""
    try:
        parts = urlsplit(url)
        # Accessing ``port`` validates the numeric port component.
        _ = parts.port
    except ValueError as exc:
        raise ConfigError(f"Malformed URL for probe target '{label}': {url!r} ({exc}).") from exc
    if parts.scheme not in {"http", "https"}:
        raise ConfigError(
            f"Probe target '{label}' must use http or https. Got {url!r}."
        )
    if not parts.hostname:
        raise ConfigError(f"Probe target '{label}' is missing a host. Got {url!r}.")


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in ALLOWED_NESTED_KEYS.items():
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")


def _build_config(raw: Mapping[str, object]) -> DiagnosticsConfig:
    container_name = _expect_name(raw.get("container_name"), "container_name")
    service_process = _expect_name(raw.get("service_process"), "service_process")

    tunnel_value = raw.get("tunnel_container")
    tunnel_container: str | None = None
    if isinstance(tunnel_value, str):
        tunnel_container = tunnel_value.strip() or None
    elif tunnel_value is not None:
        raise ConfigError("tunnel_container must be a string or null.")

    host_port = _expect_int(raw.get("host_port"), "host_port", default=4000)
    if not 1 <= host_port <= 65535:
        raise ConfigError(f"host_port must be between 1 and 65535. Got {host_port}.")

    production_host = _expect_name(raw.get("production_host"), "production_host")
    if "/" in production_host or " " in production_host:
        raise ConfigError(
            f"production_host must be a bare hostname. Got {production_host!r}."
        )

    api_path = _expect_name(raw.get("api_path"), "api_path")
    if not api_path.startswith("/"):
        api_path = f"/{api_path}"

    local_timeout_ms = _expect_positive_int(
        raw.get("local_timeout_ms"), "local_timeout_ms", default=5000
    )
    remote_timeout_ms = _expect_positive_int(
        raw.get("remote_timeout_ms"), "remote_timeout_ms", default=10000
    )
    max_lines = _expect_positive_int(raw.get("max_lines"), "max_lines", default=20)

    logs_dir_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_dir_value) if logs_dir_value else None

    logs_mapping = _as_dict(raw.get("logs"), "logs")
    logs = LogSourcesConfig(
        service=_expect_str_tuple(logs_mapping.get("service", ()), "logs.service"),
        proxy_access=_expect_str_tuple(
            logs_mapping.get("proxy_access", ()), "logs.proxy_access"
        ),
        proxy_error=_expect_str_tuple(
            logs_mapping.get("proxy_error", ()), "logs.proxy_error"
        ),
    )

    accelerator_mapping = _as_dict(raw.get("accelerator"), "accelerator")
    accelerator_command = _expect_str_tuple(
        accelerator_mapping.get("command", ("nvidia-smi",)), "accelerator.command"
    )
    if not accelerator_command:
        raise ConfigError("accelerator.command must contain at least one argument.")
    accelerator = AcceleratorConfig(
        command=accelerator_command,
        in_container=bool(accelerator_mapping.get("in_container", True)),
    )

    executor_mapping = _as_dict(raw.get("executor"), "executor")
    max_concurrency = _expect_positive_int(
        executor_mapping.get("max_concurrency"), "executor.max_concurrency", default=4
    )
    exec_timeout = _expect_positive_float(
        executor_mapping.get("exec_timeout"), "executor.exec_timeout", default=15.0
    )
    deadline_value = executor_mapping.get("deadline")
    deadline = (
        _expect_positive_float(deadline_value, "executor.deadline", default=0.0)
        if deadline_value is not None
        else None
    )
    executor = ExecutorConfig(
        max_concurrency=max_concurrency,
        exec_timeout=exec_timeout,
        deadline=deadline,
    )

    return DiagnosticsConfig(
        config_file=_to_path(raw.get("config_file")),
        container_name=container_name,
        service_process=service_process,
        tunnel_container=tunnel_container,
        host_port=host_port,
        production_host=production_host,
        api_path=api_path,
        local_timeout_ms=local_timeout_ms,
        remote_timeout_ms=remote_timeout_ms,
        max_lines=max_lines,
        docker_bin=_expect_name(raw.get("docker_bin"), "docker_bin"),
        logs_dir=logs_dir,
        logs=logs,
        accelerator=accelerator,
        executor=executor,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_positive_int(value: object | None, label: str, *, default: int) -> int:
    parsed = _expect_int(value, label, default=default)
    if parsed <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {parsed}.")
    return parsed


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_name(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _expect_str_tuple(value: object, label: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        # A single path supplied via an environment variable.
        value = [value]
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a list of strings. Got {type(value).__name__}.")
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{label}[{index}] must be a non-empty string.")
        items.append(item.strip())
    return tuple(items)


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AcceleratorConfig",
    "ConfigError",
    "DiagnosticsConfig",
    "ExecutorConfig",
    "LogSourcesConfig",
    "ProbeTarget",
    "load_config",
    "validate_target_url",
]
