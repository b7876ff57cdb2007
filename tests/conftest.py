"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from apiserver import APIServer, HTTPServer, ServerConfig


@pytest.fixture
def sample_get_request() -> bytes:
    """Authorized GET for the user endpoint."""
    return (
        b"GET /api/v1/users/42?verbose=1&tag=a&tag=b HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Authorization: Bearer token\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """POST with a JSON body."""
    body = b'{"name": "Ada"}'
    return (
        b"POST /api/v1/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def config(free_port: int) -> ServerConfig:
    """Small, quiet configuration on a free loopback port."""
    return ServerConfig(
        addr=f"127.0.0.1:{free_port}",
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


class BackgroundServer:
    """Runs an HTTPServer in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:
            self.error = e

    def start(self) -> "BackgroundServer":
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            if self.server.wait_until_listening(timeout=0.1):
                return self
            if self.error is not None:
                raise self.error

        raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def request(self, raw: bytes) -> bytes:
        """Send raw request bytes on a fresh connection, return everything read."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(raw)
            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)


@pytest.fixture
def api_server(config: ServerConfig) -> Generator[BackgroundServer, None, None]:
    """The full application, listening on a free port."""
    app = APIServer(config.addr, config=config)
    background = BackgroundServer(app.http_server).start()

    yield background

    background.stop()


@pytest.fixture
def serve(config: ServerConfig) -> Generator:
    """Factory: serve any handler on the test config until teardown."""
    started = []

    def start(handler) -> BackgroundServer:
        background = BackgroundServer(HTTPServer(handler, config)).start()
        started.append(background)
        return background

    yield start

    for background in started:
        background.stop()
