"""
Client-side helpers for the CCS wire protocol.

    ip = discover_server(9876)                   # UDP broadcast probe
    with ArithmeticClient(ip, 9876) as client:   # TCP session
        client.request("ADD 2 3")                # "5"
        client.compute("div", 7, 0)              # "ERROR"

There is no interactive loop here; callers drive the session.
"""

import logging
import socket
from typing import Optional

from .protocol.messages import (
    DISCOVERY_PROBE,
    DISCOVERY_REPLY,
    ENCODING,
    LINE_TERMINATOR,
)


logger = logging.getLogger(__name__)


def discover_server(
    port: int,
    broadcast_address: str = "255.255.255.255",
    timeout: float = 30.0,
) -> Optional[str]:
    """
    Locate a server by broadcasting the discovery probe.

    Args:
        port: Port the server listens on.
        broadcast_address: Where to send the probe. A unicast address
                           works too (useful on loopback).
        timeout: Seconds to wait for the reply.

    Returns:
        The IP address the reply came from, or None on timeout or an
        unexpected reply.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.settimeout(timeout)

        sock.sendto(DISCOVERY_PROBE, (broadcast_address, port))
        logger.debug(f"Discovery probe sent to {broadcast_address}:{port}")

        try:
            data, sender = sock.recvfrom(1024)
        except socket.timeout:
            logger.warning("Discovery timed out")
            return None

    if data != DISCOVERY_REPLY:
        logger.warning(f"Unexpected discovery response from {sender[0]}: {data!r}")
        return None

    logger.info(f"Server discovered at {sender[0]}")
    return sender[0]


class ArithmeticClient:
    """
    One TCP session with a CCS server.

    Requests are answered strictly in order, one reply line per request
    line, so request() simply writes a line and reads the next one.
    """

    def __init__(self, host: str, port: int, timeout: Optional[float] = 30.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._socket: Optional[socket.socket] = None
        self._buffer = b""

    def connect(self) -> "ArithmeticClient":
        self._socket = socket.create_connection((self.host, self.port), timeout=self.timeout)
        return self

    def close(self):
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def __enter__(self) -> "ArithmeticClient":
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def send_line(self, line: str):
        if self._socket is None:
            raise ConnectionError("Not connected")
        self._socket.sendall(line.encode(ENCODING) + LINE_TERMINATOR)

    def read_line(self) -> str:
        """
        Read one reply line.

        Raises:
            ConnectionError: If the server closed the connection.
            socket.timeout: If no reply arrives within the timeout.
        """
        if self._socket is None:
            raise ConnectionError("Not connected")

        while LINE_TERMINATOR not in self._buffer:
            chunk = self._socket.recv(4096)
            if not chunk:
                raise ConnectionError("Connection closed by server")
            self._buffer += chunk

        raw, _, self._buffer = self._buffer.partition(LINE_TERMINATOR)
        return raw.decode(ENCODING).rstrip("\r")

    def request(self, line: str) -> str:
        """Send one request line and return the reply text."""
        self.send_line(line)
        return self.read_line()

    def compute(self, operation: str, left: int, right: int) -> str:
        return self.request(f"{operation} {left} {right}")
