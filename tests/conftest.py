"""Pytest configuration and fixtures for books-bdd tests.

This file provides:
- Command-line options selecting the mock server or a live Books API
- PortReservation: Race-free port allocation for the mock server
- MockServer: Subprocess management for the mock Books API
- make_captured_response: CapturedResponse factory for validator tests
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Generator

import pytest

from books_bdd.models import CapturedResponse

# Project root for subprocess working directory
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("books-bdd")
    group.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run acceptance scenarios against the resolved Books API instead of the mock server",
    )
    group.addoption(
        "--api-base-url",
        default=None,
        help="Base URL override for live runs (implies --live)",
    )
    group.addoption(
        "--books-config",
        type=Path,
        default=None,
        help="YAML config file for live runs",
    )
    group.addoption(
        "--api-timeout",
        type=float,
        default=None,
        help="Request timeout in seconds for live runs",
    )


def make_captured_response(
    status_code: int = 200,
    body: Any = None,
    text: str | None = None,
    headers: dict[str, list[str]] | None = None,
    body_is_json: bool | None = None,
    method: str = "GET",
    url: str = "http://books.test/api/v1/Books",
) -> CapturedResponse:
    """Create a CapturedResponse for testing validations.

    body_is_json defaults to True whenever a body is given.
    """
    if body_is_json is None:
        body_is_json = body is not None
    return CapturedResponse(
        method=method,
        url=url,
        status_code=status_code,
        headers=headers or {},
        body=body,
        body_is_json=body_is_json,
        text=text if text is not None else "",
        elapsed_ms=5.0,
    )


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    Usage:
        reservation = PortReservation()
        server = MockServer(reservation)
        server.start()  # calls release() internally, then binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def find_free_port() -> int:
    """Find an available port on localhost (racy; prefer PortReservation)."""
    with PortReservation() as reservation:
        return reservation.port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages a mock Books API subprocess for integration tests.

    Runs tests/integration/mock_server.py as a subprocess with a fresh
    in-memory store seeded with books 1..seed_count.
    """

    def __init__(self, port: int | PortReservation, seed_count: int = 10) -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.seed_count = seed_count
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
                "--seed-count", str(self.seed_count),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                self._process.terminate()
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess (SIGTERM, then SIGKILL after 5s).

        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable, nothing more to do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def books_server() -> Generator[MockServer, None, None]:
    """Mock Books API shared by the whole session.

    Scenarios that mutate books use distinct ids, so one server is enough.
    """
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m unit
        pytest -m integration
        pytest -m acceptance
    """
    for item in items:
        test_path = Path(item.path)
        if "acceptance" in test_path.parts:
            item.add_marker(pytest.mark.acceptance)
        elif "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
