"""Logging helpers: console diagnostics plus an optional operations journal.

Two facilities live here:

* :func:`configure_logging` wires the standard library ``logging`` tree to a
  Rich handler on stderr so debug traces never mix with the report on stdout.
* :class:`StructuredLogger` records one JSON line per CLI operation (command,
  arguments, steps and outcome) when a log directory is configured. Check
  results themselves are never journaled; only counts and status.
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER = logging.getLogger("svcdoctor")

OPERATIONS_LOG_NAME = "operations.jsonl"


def configure_logging(*, verbose: bool = False, console: Console | None = None) -> None:
    """Attach a Rich handler to the package logger."""
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setLevel(level)
    for existing in list(LOGGER.handlers):
        if isinstance(existing, RichHandler):
            LOGGER.removeHandler(existing)
    LOGGER.addHandler(handler)
    LOGGER.setLevel(level)


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final outcome of one logged operation."""

    def __init__(
        self,
        command: str,
        args: Mapping[str, object] | None,
        target: Mapping[str, object] | None,
    ) -> None:
        """Initialise an empty scope for *command*."""
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None

    def add_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            warnings=warnings,
            errors=errors,
            changed=changed,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        rc: int | None = None,
        errors: Sequence[str] | None = None,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            rc=rc,
            errors=errors if errors else [message],
            warnings=warnings,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        rc: int | None = None,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
        }
        if rc is not None:
            result["rc"] = rc
        if warnings:
            result["warnings"] = list(warnings)
        if errors:
            result["errors"] = list(errors)
        if context:
            result["context"] = _sanitize(context)
        self.result = result


class StructuredLogger:
    """Append operation records to ``operations.jsonl`` under *log_dir*.

    The logger never raises on filesystem problems: if the directory cannot be
    created or a write fails it disables itself and later operations become
    no-ops.
    """

    def __init__(self, log_dir: Path | None) -> None:
        """Prepare the log directory when one is configured."""
        self._log_dir = log_dir
        self._enabled = log_dir is not None
        self._operations_log_path = (
            log_dir / OPERATIONS_LOG_NAME if log_dir is not None else None
        )
        if log_dir is not None:
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                LOGGER.debug("Disabling operations journal: %s", exc)
                self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return ``True`` while records are being written."""
        return self._enabled

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and journal it on exit."""
        scope = OperationScope(command, args, target)
        started = datetime.now(UTC)
        start = time.perf_counter()
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(f"{command} aborted: {exc}")
            raise
        finally:
            if scope.result is None:
                scope.success(f"{command} completed.")
            duration_ms = int((time.perf_counter() - start) * 1000)
            self._write(scope, started, duration_ms)

    def _write(self, scope: OperationScope, started: datetime, duration_ms: int) -> None:
        LOGGER.debug(
            "operation %s finished: %s",
            scope.command,
            (scope.result or {}).get("status"),
        )
        if not self._enabled or self._operations_log_path is None:
            return
        record = {
            "timestamp": started.isoformat(),
            "command": scope.command,
            "args": _sanitize(scope.args),
            "target": _sanitize(scope.target),
            "steps": scope.steps,
            "duration_ms": duration_ms,
            "result": scope.result,
        }
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.debug("Disabling operations journal after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger", "configure_logging"]
