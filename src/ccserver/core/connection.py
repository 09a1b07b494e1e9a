"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with a line-oriented API.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("ADD 2 3\\n")
        send("SUB 9 4\\n")

    Server might receive ANY of these:
        recv() → "ADD 2 3\\nSUB 9 4\\n"   (both combined)
        recv() → "ADD 2"               (partial)
        recv() → " 3\\nSUB 9 4\\n"       (rest of first + second)

We buffer received bytes and cut them at b"\\n" to recover request lines.
Bytes after the cut stay in the buffer for the next read_line() call, so
pipelined requests are answered one at a time, in order.

=============================================================================
IDLE TIMEOUT
=============================================================================

The socket timeout is the session's idle timeout. Every recv() waits at
most that long; a client that sends nothing for the whole period gets its
connection closed.

    ┌──────────┐ line  ┌──────────┐ line  ┌──────────┐ 20s silence ┌────────┐
    │ READING  │──────►│ WRITING  │──────►│ READING  │────────────►│ CLOSED │
    └──────────┘       └──────────┘       └──────────┘             └────────┘

=============================================================================
"""

import socket
import time
import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..protocol.messages import LINE_TERMINATOR, ENCODING


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.

        NEW → READING → WRITING → READING → ... → CLOSING → CLOSED
    """
    NEW = "new"            # Just accepted
    READING = "reading"    # Waiting for a request line
    WRITING = "writing"    # Sending a reply
    CLOSING = "closing"    # Shutting down
    CLOSED = "closed"      # Socket released


class LineTooLong(ValueError):
    """The peer sent more than max_line_length bytes without a newline."""


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. LINE FRAMING                                                     │
    │     └── Buffer recv() chunks, split on b"\\n", strip b"\\r"           │
    │                                                                      │
    │  2. IDLE TIMEOUT                                                     │
    │     └── socket timeout = session idle timeout                        │
    │                                                                      │
    │  3. REPLIES                                                          │
    │     └── One sendall() per reply line                                 │
    │                                                                      │
    │  4. CLOSE                                                            │
    │     └── shutdown(SHUT_RDWR) then close(), safe from any thread       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier for log lines.
        state: Current connection state.
        lines_read: Number of request lines read so far.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lines_read: int = 0

    buffer_size: int = 4096
    timeout: Optional[float] = 20.0
    max_line_length: int = 8192

    _buffer: bytes = field(default=b"", repr=False)
    _eof: bool = field(default=False, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """The client IP address, used as the registry identity."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read one request line.

        Blocks until a full line is buffered, the peer closes, or the idle
        timeout expires. The line terminator (\\n or \\r\\n) is removed and
        the bytes are decoded as UTF-8, with undecodable bytes replaced.

        A final line that the peer sent without a terminator before
        closing is still returned; the call after that returns None.

        Returns:
            The decoded line, or None on EOF, timeout or connection reset.

        Raises:
            LineTooLong: If the buffered line exceeds max_line_length.
        """
        self.state = ConnectionState.READING

        while LINE_TERMINATOR not in self._buffer:
            if len(self._buffer) > self.max_line_length:
                raise LineTooLong(f"Line too long: {len(self._buffer)} bytes")

            if self._eof:
                return self._take_remainder()

            try:
                chunk = self._recv()
            except socket.timeout:
                logger.debug(f"[{self.id}] Idle timeout after {self.timeout}s")
                return None

            if not chunk:
                self._eof = True
                continue

            self._buffer += chunk

        raw, _, self._buffer = self._buffer.partition(LINE_TERMINATOR)
        if len(raw) > self.max_line_length:
            raise LineTooLong(f"Line too long: {len(raw)} bytes")
        return self._decode(raw)

    def _take_remainder(self) -> Optional[str]:
        """Return an unterminated trailing line once, then None."""
        if not self._buffer:
            return None
        raw, self._buffer = self._buffer, b""
        return self._decode(raw)

    def _decode(self, raw: bytes) -> str:
        self.lines_read += 1
        self.last_activity = time.time()
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(ENCODING, errors="replace")

    def _recv(self) -> bytes:
        """
        Receive data from socket with error handling.

        Returns:
            Received bytes, or empty bytes if the connection is gone.
        """
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""
        except OSError:
            # Socket closed underneath us (forced shutdown).
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return b""
            raise

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_line(self, text: str) -> bool:
        """
        Send one reply line.

        Returns:
            True if the line was sent, False if the connection is lost.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(text.encode(ENCODING) + LINE_TERMINATOR)
            self.last_activity = time.time()
            return True
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection in both directions.

        Idempotent and safe to call from another thread: shutdown() wakes a
        session blocked in recv(), which then sees EOF.
        """
        with self._close_lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.lines_read} lines")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
