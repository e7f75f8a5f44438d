"""Shared test fixtures for loopauth.

Provides reusable fixtures for isolated config environments, output state,
client credentials, stub token exchangers, and a helper that plays the part
of the browser by connecting to a loopback listener.
"""

from __future__ import annotations

import socket
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Union

import pytest
from pydantic import SecretStr

from loopauth.exceptions import LoopauthError
from loopauth.models import (
    AccessToken,
    AuthorizationRequest,
    ClientCredentials,
    ProviderEndpoints,
)
from loopauth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; Typer's CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Flow fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def credentials() -> ClientCredentials:
    return ClientCredentials(client_id="test-client-id", client_secret="test-client-secret")


@pytest.fixture
def endpoints() -> ProviderEndpoints:
    return ProviderEndpoints(
        authorize_url="https://auth.example.com/authorize",
        token_url="https://auth.example.com/token",
    )


class StubExchanger:
    """Token exchanger that records calls instead of talking HTTP."""

    def __init__(
        self,
        token: Optional[AccessToken] = None,
        error: Optional[LoopauthError] = None,
    ) -> None:
        self.token = token or AccessToken(secret="abc123", token_type="bearer")
        self.error = error
        self.calls: list[tuple[AuthorizationRequest, str]] = []

    @property
    def called(self) -> bool:
        return bool(self.calls)

    def exchange(
        self, request: AuthorizationRequest, code: Union[SecretStr, str]
    ) -> AccessToken:
        if isinstance(code, SecretStr):
            code = code.get_secret_value()
        self.calls.append((request, code))
        if self.error is not None:
            raise self.error
        return self.token


@pytest.fixture
def stub_exchanger() -> StubExchanger:
    return StubExchanger()


def find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def send_redirect(port: int, target: str, host: str = "127.0.0.1") -> bytes:
    """Act as the browser: send ``GET <target>`` and return the raw response."""
    with socket.create_connection((host, port), timeout=5) as conn:
        conn.sendall(
            f"GET {target} HTTP/1.1\r\nHost: {host}:{port}\r\n\r\n".encode("ascii")
        )
        chunks = []
        while True:
            chunk = conn.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def send_when_listening(
    port: int,
    target: Union[str, Callable[[], str]],
    results: list[bytes],
    deadline: float = 5.0,
) -> threading.Thread:
    """Start a thread that retries until the listener accepts, then sends *target*.

    *target* may be a callable so it can be computed once the flow has
    produced its authorization URL.
    """

    def _run() -> None:
        end = time.monotonic() + deadline
        while time.monotonic() < end:
            try:
                path = target() if callable(target) else target
                results.append(send_redirect(port, path))
                return
            except (ConnectionRefusedError, LookupError):
                time.sleep(0.02)

    thread = threading.Thread(target=_run, daemon=True)
    thread.start()
    return thread


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of tmp_path,
    clears LOOPAUTH_* and GITHUB_CLIENT_* variables, and forces the XDG
    layout regardless of platform.
    """
    monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "LOOPAUTH_HOST",
        "LOOPAUTH_PORT",
        "LOOPAUTH_TIMEOUT",
        "GITHUB_CLIENT_ID",
        "GITHUB_CLIENT_SECRET",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
