"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening TCP socket and the accept loop. Think of
it as the front desk: it greets each arriving connection and hands it to
CCSServer, which classifies the client and queues a session.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a socket file descriptor
    2. bind()      Associate the socket with an IP:PORT
    3. listen()    Start queueing incoming connections (backlog)
    4. accept()    Wait for a connection, returns a NEW per-client socket
    5. close()     Release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    └───────────┬───────────┘     Bound to 0.0.0.0:PORT
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Session 1 │         │ Session 2 │         │ Session 3 │
    └───────────┘         └───────────┘         └───────────┘

bind() and serve() are separate calls so that a port that is already in
use is reported at startup, before any thread is started.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:  restart immediately without "Address already in use"
               while old connections sit in TIME_WAIT.
TCP_NODELAY:   replies are tiny lines; send them without Nagle delay.

SO_REUSEPORT is not set: a second server on the same port must fail to
start instead of sharing the port.

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind()            Create socket, bind, listen                     │
    │        │                                                             │
    │        ▼                                                             │
    │    serve(handler)    Accept loop (blocks here!)                      │
    │        │                                                             │
    │        └──► while running:                                           │
    │                accept()      Wait for connection (1s poll)           │
    │                Connection()  Wrap client socket                      │
    │                handler(conn) Hand off to CCSServer                   │
    │                                                                      │
    │    shutdown()        _running = False, loop exits within 1s          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        server.bind()                       # may raise OSError
        server.serve(handle_connection)     # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig, poll_interval: float = 1.0):
        self.config = config
        self.poll_interval = poll_interval

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._shutdown_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); reflects the real port after binding to 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() times out periodically so the loop can notice shutdown.
        sock.settimeout(self.poll_interval)
        return sock

    def bind(self):
        """
        Create, bind and listen.

        Raises:
            OSError: If the address cannot be bound (port in use,
                     permission denied, bad host).
        """
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind TCP {self.config.host}:{self.config.port}: {e}")
            raise

        self._socket = sock
        host, port = self.address
        logger.info(f"Server listening on TCP {host}:{port}")

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Args:
            connection_handler: Called in the accept thread with each new
                                Connection. Must not block for long.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._shutdown_event.clear()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._running = False
            self._cleanup()
            self._shutdown_event.set()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                # Normal: lets us re-check self._running.
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.session_timeout,
                max_line_length=self.config.max_line_length,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection dispatch failed: {e}")
                conn.close()

    def shutdown(self):
        """Initiate shutdown. Idempotent."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def close(self):
        """Release a socket that was bound but never served."""
        if not self._running:
            self._cleanup()

    def _cleanup(self):
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
            logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the accept loop to exit.

        Returns:
            True if it exited, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
