"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ccserver import CCSServer, ServerConfig, Statistics
from ccserver.client import ArithmeticClient
from ccserver.core import Connection


@pytest.fixture
def config() -> ServerConfig:
    """Loopback test configuration with an OS-assigned port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=16,
        session_timeout=5.0,
        stats_interval=60.0,
        shutdown_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def stats() -> Statistics:
    return Statistics()


@pytest.fixture
def server(config: ServerConfig) -> Generator[CCSServer, None, None]:
    """A started server on 127.0.0.1, shut down after the test."""
    srv = CCSServer(config)
    srv.start()

    yield srv

    srv.shutdown()


@pytest.fixture
def client_factory(server: CCSServer):
    """Open ArithmeticClient sessions against the running server."""
    clients = []

    def connect(timeout: float = 5.0) -> ArithmeticClient:
        client = ArithmeticClient("127.0.0.1", server.port, timeout=timeout).connect()
        clients.append(client)
        return client

    yield connect

    for client in clients:
        client.close()


@pytest.fixture
def connection_pair() -> Generator[Tuple[Connection, socket.socket], None, None]:
    """
    A server-side Connection wired to a plain peer socket.

    Uses socketpair() so session tests run without a listener.
    """
    server_sock, peer_sock = socket.socketpair()
    conn = Connection(
        socket=server_sock,
        address=("10.0.0.5", 40000),
        timeout=5.0,
        max_line_length=64,
    )
    peer_sock.settimeout(5.0)

    yield conn, peer_sock

    conn.close()
    peer_sock.close()


@pytest.fixture
def read_lines():
    """Read exactly `count` newline-terminated lines from a raw socket."""

    def read(sock: socket.socket, count: int) -> list:
        buffer = b""
        while buffer.count(b"\n") < count:
            chunk = sock.recv(4096)
            if not chunk:
                break
            buffer += chunk
        return buffer.decode().splitlines()

    return read
