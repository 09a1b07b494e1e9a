"""
=============================================================================
UDP DISCOVERY RESPONDER
=============================================================================

Clients find the server without knowing its address: they broadcast a
fixed probe on the server's port and wait for a reply. The reply's source
address IS the answer.

    Client (10.0.0.7:51000)                 Server (10.0.0.2:9876)
         │                                        │
         │  b"CCS DISCOVER" → 10.0.0.255:9876     │
         │ ──────────────────────────────────────►│
         │                                        │
         │  b"CCS FOUND"   → 10.0.0.7:51000       │
         │ ◄──────────────────────────────────────│
         │                                        │
    Client now opens TCP to 10.0.0.2:9876

=============================================================================
RULES
=============================================================================

    datagram longer than 12 bytes   → dropped, logged, no reply
    exactly b"CCS DISCOVER"         → one b"CCS FOUND" to the sender
    anything else                   → logged, no reply

The responder is stateless: each datagram is judged on its own. A socket
error ends the responder only; TCP serving carries on without it.

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Tuple

from ..protocol.messages import (
    DISCOVERY_PROBE,
    DISCOVERY_REPLY,
    DISCOVERY_MAX_SIZE,
    ENCODING,
)


logger = logging.getLogger(__name__)

# Large enough for any UDP payload, so oversize probes are seen whole
# instead of being silently truncated to the probe length.
RECV_BUFFER_SIZE = 65535


class DiscoveryResponder:
    """
    Answers discovery probes on a UDP port.

    Usage:
        responder = DiscoveryResponder("0.0.0.0", 9876)
        responder.bind()          # may raise OSError
        responder.serve()         # blocks until shutdown() or socket error
    """

    def __init__(
        self,
        host: str,
        port: int,
        max_size: int = DISCOVERY_MAX_SIZE,
        poll_interval: float = 1.0,
    ):
        self.host = host
        self.port = port
        self.max_size = max_size
        self.poll_interval = poll_interval

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stopped = threading.Event()

        self.probes_answered = 0
        self.datagrams_ignored = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.host, self.port)

    def bind(self):
        """
        Create and bind the UDP socket.

        Raises:
            OSError: If the port cannot be bound.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

        # recvfrom() wakes up every poll_interval so shutdown() is noticed.
        sock.settimeout(self.poll_interval)

        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind UDP {self.host}:{self.port}: {e}")
            raise

        self._socket = sock
        logger.info(f"Discovery responder listening on UDP {self.host}:{self.port}")

    def serve(self):
        """
        Receive loop. Blocks until shutdown() or a socket error.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._stopped.clear()

        try:
            while self._running:
                try:
                    data, sender = self._socket.recvfrom(RECV_BUFFER_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._running:
                        logger.error(f"UDP discovery error: {e}")
                    break

                try:
                    self.handle_datagram(data, sender)
                except OSError as e:
                    logger.error(f"UDP discovery error: {e}")
                    break
        finally:
            self._running = False
            self._cleanup()
            self._stopped.set()

    def handle_datagram(self, data: bytes, sender: Tuple[str, int]) -> bool:
        """
        Judge one datagram and reply if it is a valid probe.

        Returns:
            True if a reply was sent.

        Raises:
            OSError: If sending the reply fails.
        """
        logger.debug(f"Received {len(data)} bytes from {sender[0]}:{sender[1]}")

        if len(data) > self.max_size:
            logger.info(f"Oversized discovery message from {sender[0]} ({len(data)} bytes), ignoring")
            self.datagrams_ignored += 1
            return False

        if data != DISCOVERY_PROBE:
            message = data.decode(ENCODING, errors="replace")
            logger.info(f"Invalid discovery message from {sender[0]}: {message!r}")
            self.datagrams_ignored += 1
            return False

        logger.info(f"Discovery request received from {sender[0]}")
        self._socket.sendto(DISCOVERY_REPLY, sender)
        self.probes_answered += 1
        logger.debug(f"Discovery response sent to {sender[0]}:{sender[1]}")
        return True

    def shutdown(self):
        """Stop the receive loop. Idempotent."""
        self._running = False

    def close(self):
        """Release a socket that was bound but never served."""
        if not self._running:
            self._cleanup()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def _cleanup(self):
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        logger.info("Discovery responder stopped")
