"""Shared test fixtures for pkcecli.

Provides isolated configuration directories, output state management,
client configurations, and helpers for driving the loopback receiver.
These fixtures are automatically discovered by pytest and available to all
test modules without explicit imports.
"""

from __future__ import annotations

import logging
from http.client import HTTPConnection
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

import httpx
import pytest

from pkcecli.models import ClientConfig
from pkcecli.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When CliRunner redirects those streams and the test
    finishes, the cached references go stale. The same holds for the
    RichHandler that the CLI installs on the ``pkcecli`` logger.
    """
    yield
    reset_output()
    logger = logging.getLogger("pkcecli")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, colourless output manager for the test."""
    output = OutputManager(no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME into tmp_path, clears all
    PKCECLI_* environment variables and changes the working directory to
    tmp_path so that tests never touch real user config.
    """
    monkeypatch.setattr("pkcecli.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "PKCECLI_PROFILE",
        "PKCECLI_CLIENT_ID",
        "PKCECLI_TENANT_ID",
        "PKCECLI_SCOPES",
        "PKCECLI_ORIGIN",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Client configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def client_config() -> ClientConfig:
    """A generic provider configuration with two scopes and a short deadline."""
    return ClientConfig(
        client_id="abc",
        authorization_endpoint="https://login.example.com/oauth2/authorize",
        token_endpoint="https://login.example.com/oauth2/token",
        scopes=["openid", "api://term/access"],
        timeout=10.0,
    )


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _send_callback(redirect_uri: str, query: str = "", path: str | None = None) -> tuple[int, str]:
    """GET the local receiver and return ``(status, body)``."""
    parsed = urlparse(redirect_uri)
    target = path if path is not None else parsed.path
    if query:
        target = f"{target}?{query}"
    conn = HTTPConnection("127.0.0.1", parsed.port, timeout=5)
    try:
        conn.request("GET", target)
        response = conn.getresponse()
        return response.status, response.read().decode("utf-8")
    finally:
        conn.close()


@pytest.fixture
def send_callback() -> Callable[..., tuple[int, str]]:
    """Send a GET to a running receiver: ``send_callback(redirect_uri, "code=x&state=y")``."""
    return _send_callback


@pytest.fixture
def token_endpoint() -> Callable[..., tuple[httpx.MockTransport, list[httpx.Request]]]:
    """Factory for a mock token endpoint that records the requests it receives."""

    def _factory(
        payload: dict | None = None,
        status_code: int = 200,
    ) -> tuple[httpx.MockTransport, list[httpx.Request]]:
        seen: list[httpx.Request] = []
        body = payload if payload is not None else {
            "access_token": "access-123",
            "token_type": "Bearer",
            "expires_in": 3600,
        }

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(status_code, json=body)

        return httpx.MockTransport(handler), seen

    return _factory
