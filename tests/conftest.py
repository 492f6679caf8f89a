"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from routewire import App, AppConfig, RawRequest
from routewire.transport import make_server


@pytest.fixture
def config() -> AppConfig:
    """Default test configuration."""
    return AppConfig(host="127.0.0.1", port=0, log_level="WARNING")


@pytest.fixture
def app(config: AppConfig) -> App:
    """App with a handful of routes used across tests."""
    application = App(config)

    @application.get("/test")
    def test_route(req, res):
        res.json({"status": "ok"})

    @application.post("/echo")
    def echo_route(req, res):
        res.json({"received": req.parsed_body})

    @application.get("/users/:id", name="get_user")
    def get_user(req, res):
        res.json({"id": req.get_param("id")})

    @application.get("/boom")
    def boom(req, res):
        raise RuntimeError("kaboom")

    return application


@pytest.fixture
def make_raw() -> Callable[..., RawRequest]:
    """Factory for RawRequest values with sensible defaults."""
    def factory(method: str = "GET", path: str = "/", **kwargs) -> RawRequest:
        kwargs.setdefault("remote_address", "127.0.0.1")
        return RawRequest(method=method, path=path, **kwargs)
    return factory


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, app: App, port: int):
        self.server = make_server(app, "127.0.0.1", port)
        self.port = port
        self._thread: threading.Thread = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

        # Wait for server to be ready
        for _ in range(50):  # 5 seconds max
            try:
                with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                    s.connect(('127.0.0.1', self.port))
                    return
            except ConnectionRefusedError:
                time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        self.server.server_close()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def start_server(free_port: int) -> Generator[Callable[[App], TestServer], None, None]:
    """Factory that serves any App on a free port; stopped on teardown."""
    started = []

    def factory(application: App) -> TestServer:
        test_srv = TestServer(application, free_port)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(app: App, start_server) -> TestServer:
    """Serve the shared app on a free port."""
    return start_server(app)
