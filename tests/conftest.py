"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os

import pytest

from svcdoctor.config import DiagnosticsConfig, load_config
from tests.fakes import CONTAINER, FakeAccelerator, FakeHttpClient, FakeRuntime, running_state


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def diagnostics_config(tmp_path: os.PathLike[str]) -> DiagnosticsConfig:
    """Return the default configuration, isolated from the host environment."""
    return load_config(config_file=os.path.join(tmp_path, "missing.yml"), env={})


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    """Return a runtime where the service container is up and healthy."""
    return FakeRuntime(
        containers={CONTAINER: running_state()},
        files={
            "/app/webxr.log": "[INFO] server listening on 0.0.0.0:3001\n",
            "/var/log/nginx/access.log": '127.0.0.1 - - "GET / HTTP/1.1" 200\n',
        },
        logs={CONTAINER: "2026-10-19T08:00:01Z starting webxr"},
    )


@pytest.fixture
def fake_http() -> FakeHttpClient:
    """Return the HTTP outcomes of the canonical end-to-end scenario."""
    return FakeHttpClient(
        responses={
            "http://localhost:4000/": 200,
            "http://localhost:4000/api/settings": 200,
            "https://www.visionflow.info/": "refused",
            "https://www.visionflow.info/api/settings": 404,
        }
    )


@pytest.fixture
def fake_accelerator() -> FakeAccelerator:
    """Return an accelerator that reports one device."""
    return FakeAccelerator()
