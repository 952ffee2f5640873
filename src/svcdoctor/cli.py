"""Typer-powered command line entry point for ``svcdoctor``.

A single command runs every configured check against the deployment and
prints one consolidated report. Individual check failures never change the
exit status; only configuration errors do.
"""
from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from . import get_version
from .config import ConfigError, DiagnosticsConfig, load_config
from .doctor import (
    CheckStatus,
    ExecutorOptions,
    Orchestrator,
    SummaryReporter,
    collect_checks,
    serialize_report,
    summary_entries,
)
from .exit_codes import ExitCode
from .logging import StructuredLogger, configure_logging
from .providers import AcceleratorQuery, DockerRuntime, HttpClient

console = Console(soft_wrap=True, highlight=False, emoji=False)
err_console = Console(stderr=True, soft_wrap=True, highlight=False, emoji=False)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to svcdoctor's YAML config file.",
)
CONTAINER_OPTION = typer.Option(
    None,
    "--container",
    help="Name of the service container to inspect.",
)
HOST_PORT_OPTION = typer.Option(
    None,
    "--host-port",
    min=1,
    max=65535,
    help="Host port the service is published on (default 4000).",
)
PRODUCTION_HOST_OPTION = typer.Option(
    None,
    "--production-host",
    help="Public hostname served through the tunnel.",
)
LOG_PATH_OPTION = typer.Option(
    None,
    "--log-path",
    help="Service log path inside the container (repeatable, globs allowed).",
)
MAX_LINES_OPTION = typer.Option(
    None,
    "--max-lines",
    min=1,
    help="Number of log lines to tail per source (default 20).",
)
MAX_CONCURRENCY_OPTION = typer.Option(
    None,
    "--max-concurrency",
    min=1,
    help="Limit the number of checks executed concurrently.",
)
DEADLINE_OPTION = typer.Option(
    None,
    "--deadline",
    min=0.001,
    help="Overall run deadline in seconds; unfinished checks are reported as timed out.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the report as JSON.",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log debug traces to stderr.",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"svcdoctor {get_version()}")
        raise typer.Exit(code=ExitCode.OK)


VERSION_OPTION = typer.Option(
    False,
    "--version",
    "-V",
    callback=_version_callback,
    is_eager=True,
    help="Show the svcdoctor version and exit.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Read-only health diagnostics for a containerized web service.

        Inspects the container, tails its logs, probes local and production
        endpoints, queries the accelerator and prints a consolidated report.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by the diagnostics run."""

    config: DiagnosticsConfig
    runtime: DockerRuntime
    http_client: HttpClient
    accelerator: AcceleratorQuery
    logger: StructuredLogger


def _build_runtime(config: DiagnosticsConfig) -> RuntimeContext:
    runtime = DockerRuntime(
        docker_bin=config.docker_bin,
        timeout=config.executor.exec_timeout,
    )
    accelerator = AcceleratorQuery(
        runtime=runtime,
        container_name=config.container_name,
        command=config.accelerator.command,
        in_container=config.accelerator.in_container,
        timeout=config.executor.exec_timeout,
    )
    return RuntimeContext(
        config=config,
        runtime=runtime,
        http_client=HttpClient(),
        accelerator=accelerator,
        logger=StructuredLogger(config.logs_dir),
    )


def _collect_overrides(
    *,
    container: str | None,
    host_port: int | None,
    production_host: str | None,
    log_paths: list[str] | None,
    max_lines: int | None,
    max_concurrency: int | None,
    deadline: float | None,
) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if container is not None:
        overrides["container_name"] = container
    if host_port is not None:
        overrides["host_port"] = host_port
    if production_host is not None:
        overrides["production_host"] = production_host
    if log_paths:
        overrides["logs"] = {"service": list(log_paths)}
    if max_lines is not None:
        overrides["max_lines"] = max_lines
    executor: dict[str, object] = {}
    if max_concurrency is not None:
        executor["max_concurrency"] = max_concurrency
    if deadline is not None:
        executor["deadline"] = deadline
    if executor:
        overrides["executor"] = executor
    return overrides


def _config_error(message: str) -> typer.Exit:
    err_console.print(f"[red]Configuration error:[/red] {escape(message)}")
    return typer.Exit(code=ExitCode.VALIDATION)


@app.command()
def diagnose(
    config_file: Path | None = CONFIG_FILE_OPTION,
    container: str | None = CONTAINER_OPTION,
    host_port: int | None = HOST_PORT_OPTION,
    production_host: str | None = PRODUCTION_HOST_OPTION,
    log_path: list[str] | None = LOG_PATH_OPTION,
    max_lines: int | None = MAX_LINES_OPTION,
    max_concurrency: int | None = MAX_CONCURRENCY_OPTION,
    deadline: float | None = DEADLINE_OPTION,
    json_output: bool = JSON_OPTION,
    verbose: bool = VERBOSE_OPTION,
    version: bool = VERSION_OPTION,
) -> None:
    """Run every diagnostic check and print the consolidated report."""
    configure_logging(verbose=verbose)
    overrides = _collect_overrides(
        container=container,
        host_port=host_port,
        production_host=production_host,
        log_paths=log_path,
        max_lines=max_lines,
        max_concurrency=max_concurrency,
        deadline=deadline,
    )
    try:
        config = load_config(config_file=config_file, overrides=overrides)
        runtime = _build_runtime(config)
        checks = collect_checks(
            config,
            runtime=runtime.runtime,
            http_client=runtime.http_client,
            accelerator=runtime.accelerator,
        )
        entries = summary_entries(config)
    except ConfigError as exc:
        raise _config_error(str(exc)) from exc

    with runtime.logger.operation(
        "diagnose",
        args={"json": json_output, **overrides},
        target={"kind": "container", "name": config.container_name},
    ) as op:
        orchestrator = Orchestrator(
            ExecutorOptions(
                max_concurrency=config.executor.max_concurrency,
                deadline=config.executor.deadline,
            )
        )
        report = orchestrator.run(
            checks,
            metadata={
                "container": config.container_name,
                "production_host": config.production_host,
                "host_port": config.host_port,
            },
        )
        op.add_step("checks", status="success", detail=f"{len(report.results)} result(s)")

        reporter = SummaryReporter(entries)
        text = orchestrator.render(report, reporter)
        if json_output:
            console.print(
                json.dumps(serialize_report(report, entries), indent=2),
                markup=False,
            )
        else:
            console.print(text, markup=False, end="")

        # Only counts are journaled, never check names or output.
        totals = {status.value: count for status, count in report.totals.items()}
        if totals[CheckStatus.FAILURE.value]:
            op.warning(
                "Diagnostics completed with failing checks.",
                context={"totals": totals},
            )
        else:
            op.success("Diagnostics completed.", context={"totals": totals})


def main() -> None:
    """Console-script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
