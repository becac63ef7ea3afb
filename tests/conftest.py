"""Shared fixtures for the nodegroups client tests."""

import json
from collections.abc import Callable

import httpx
import pytest
from structlog.testing import capture_logs

from nodegroups_client import config


@pytest.fixture(autouse=True)
def log_output():
    """Capture structlog events instead of printing them."""
    with capture_logs() as logs:
        yield logs


@pytest.fixture(autouse=True)
def no_default_config_file(monkeypatch, tmp_path):
    """Point the default config file at a path that does not exist."""
    monkeypatch.setenv(config.CONFIG_ENV_VAR, str(tmp_path / "absent.ini"))


@pytest.fixture
def requests() -> list[httpx.Request]:
    """Requests seen by the mock transport, in order."""
    return []


@pytest.fixture
def make_transport(
    requests: list[httpx.Request],
) -> Callable[..., httpx.MockTransport]:
    """Build a MockTransport answering every request with one response."""

    def _make(
        body: dict | str | None = None,
        status_code: int = 200,
    ) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if isinstance(body, str):
                return httpx.Response(status_code, text=body)
            return httpx.Response(status_code, content=json.dumps(body or {}))

        return httpx.MockTransport(handler)

    return _make
