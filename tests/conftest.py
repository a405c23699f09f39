"""Pytest configuration and fixtures for artifactory-cli tests.

This file provides:
- make_transport / RecordingTransport: httpx.MockTransport doubles that record
  the requests the executor sends
- FakeBodyStream: response bodies that count close() calls or time out mid-read
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock Artifactory server
"""

from __future__ import annotations

import logging
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator, Iterator

import httpx
import pytest

from artifactory_cli.models import Credentials, HttpMethod, RequestDescriptor

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"

API_URL = "http://host:8081/artifactory/api/"
COMPRESS_URL = API_URL + "system/storage/compress"


# =============================================================================
# httpx doubles
# =============================================================================


class FakeBodyStream(httpx.SyncByteStream):
    """Response body that yields chunks, optionally failing afterwards.

    Counts close() calls so tests can check the connection is released once.
    """

    def __init__(self, chunks: list[bytes] | None = None, fail_with: Exception | None = None) -> None:
        self._chunks = chunks or []
        self._fail_with = fail_with
        self.close_count = 0

    def __iter__(self) -> Iterator[bytes]:
        yield from self._chunks
        if self._fail_with is not None:
            raise self._fail_with

    def close(self) -> None:
        self.close_count += 1


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled (body read) and counts close()."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self.close_count = 0

        def recording_handler(request: httpx.Request) -> httpx.Response:
            request.read()
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def close(self) -> None:
        self.close_count += 1


def make_transport(
    status_code: int = 200,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
    stream: httpx.SyncByteStream | None = None,
) -> RecordingTransport:
    """Create a transport that answers every request with the same response.

    Prefer this over building MockTransport handlers inline - it documents which
    response fields are typically varied in tests.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if stream is not None:
            return httpx.Response(status_code, headers=headers, stream=stream)
        return httpx.Response(status_code, headers=headers, content=content)

    return RecordingTransport(handler)


def failing_transport(exc_factory: Callable[[httpx.Request], Exception]) -> RecordingTransport:
    """Create a transport whose every request raises exc_factory(request)."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_factory(request)

    return RecordingTransport(handler)


def make_descriptor(
    method: HttpMethod | str = HttpMethod.GET,
    url: str = API_URL + "system",
    **fields: Any,
) -> RequestDescriptor:
    """Create a RequestDescriptor with test defaults."""
    return RequestDescriptor(method=method, url=url, **fields)


@pytest.fixture
def admin_credentials() -> Credentials:
    return Credentials(username="admin", password="password")


@pytest.fixture(autouse=True)
def reset_package_logger() -> Generator[None, None, None]:
    """Drop handlers the CLI installs so they never outlive a test's stderr."""
    yield
    package_logger = logging.getLogger("artifactory_cli")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


# =============================================================================
# Mock server management
# =============================================================================


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    Usage:
        reservation = PortReservation()
        # port is held exclusively until release()
        server = MockServer(reservation, variant="default")
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
    """Find a port on localhost with nothing listening on it.

    WARNING: Another process may bind the port after this returns. Fine for
    "connection refused" tests; use PortReservation for servers.
    """
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
    """Manages a mock Artifactory server subprocess for integration tests.

    Runs tests/integration/mock_server.py as a subprocess. The "slow" variant
    stalls the compress and export endpoints to trigger client read timeouts.
    """

    def __init__(self, port: int | PortReservation, variant: str = "default") -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.variant = variant
        self.host = "127.0.0.1"
        self.api_url = f"http://{self.host}:{self.port}/artifactory/api/"
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
                "--variant", self.variant,
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer(variant={self.variant}) failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess (SIGTERM, then SIGKILL after 5s)."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Mock Artifactory with normal behavior (session-scoped)."""
    with MockServer(PortReservation(), variant="default") as server:
        yield server


@pytest.fixture(scope="session")
def slow_mock_server() -> Generator[MockServer, None, None]:
    """Mock Artifactory whose long-running commands stall (session-scoped)."""
    with MockServer(PortReservation(), variant="slow") as server:
        yield server
