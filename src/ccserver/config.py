"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the CCS arithmetic server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m ccserver 9876 --log-level DEBUG                 │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CCS_STATS_INTERVAL=5 python -m ccserver 9876              │
    │                                                                      │
    │   3. Default values                                                 │
    │      └── Defined in the ServerConfig dataclass below               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One port number is shared by two sockets: the UDP discovery responder and
the TCP request listener. They are different address families of traffic
so the kernel lets both bind the same number.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Server configuration.

    =========================================================================
    CONFIGURATION CATEGORIES
    =========================================================================

    NETWORK
    - host, port, backlog, buffer_size

    SESSION
    - session_timeout, max_line_length

    DISCOVERY
    - discovery_max_size

    THREAD POOL
    - min_workers, max_workers, queue_size

    REPORTING
    - stats_interval

    SHUTDOWN
    - shutdown_timeout

    LOGGING
    - log_level, log_format

    =========================================================================
    EXAMPLES
    =========================================================================

    LAN deployment (answers broadcast probes):
        ServerConfig(port=9876)

    Tests (loopback only, ephemeral port, fast ticks):
        ServerConfig(host="127.0.0.1", port=0, stats_interval=0.2)

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address both sockets bind to.
    - "0.0.0.0" - All interfaces (required to hear broadcast probes)
    - "127.0.0.1" - Loopback only (tests)
    """

    port: int = 9876
    """
    Port shared by the UDP responder and the TCP listener.
    0 asks the OS for a free TCP port; the UDP socket then binds the
    same number.
    """

    backlog: int = 128
    """Maximum number of queued TCP connections."""

    buffer_size: int = 4096
    """Size of each recv() call in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # SESSION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    session_timeout: float = 20.0
    """
    Idle read timeout for a session in seconds.
    A client that sends nothing for this long is disconnected.
    """

    max_line_length: int = 8192
    """
    Longest request line accepted, in bytes.
    A client that streams more than this without a newline is disconnected.
    """

    # ─────────────────────────────────────────────────────────────────────
    # DISCOVERY SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    discovery_max_size: int = 12
    """
    Largest datagram the responder will look at.
    Equal to len(b"CCS DISCOVER"); anything bigger is dropped unanswered.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Session threads created at startup."""

    max_workers: int = 256
    """
    Upper bound on concurrently running sessions.
    Each session holds one worker for its whole lifetime.
    """

    queue_size: int = 128
    """Accepted connections waiting for a free worker."""

    # ─────────────────────────────────────────────────────────────────────
    # REPORTING / SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    stats_interval: float = 10.0
    """Seconds between statistics reports."""

    shutdown_timeout: float = 10.0
    """
    How long shutdown waits for live sessions before closing them.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """
    Format of statistics reports and access lines: 'text' or 'json'.
    """

    @classmethod
    def from_env(cls, port: Optional[int] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CCS_HOST             Bind address (default: 0.0.0.0)
        CCS_PORT             Shared TCP/UDP port (default: 9876)
        CCS_WORKERS          Max session threads (default: 256)
        CCS_SESSION_TIMEOUT  Idle timeout in seconds (default: 20)
        CCS_STATS_INTERVAL   Report period in seconds (default: 10)
        CCS_LOG_LEVEL        Logging level (default: INFO)
        CCS_LOG_FORMAT       text or json (default: text)

        =====================================================================

        Args:
            port: Explicit port, overrides CCS_PORT.
        """
        max_workers = int(os.getenv("CCS_WORKERS", "256"))
        return cls(
            host=os.getenv("CCS_HOST", "0.0.0.0"),
            port=port if port is not None else int(os.getenv("CCS_PORT", "9876")),
            min_workers=min(cls.min_workers, max_workers),
            max_workers=max_workers,
            session_timeout=float(os.getenv("CCS_SESSION_TIMEOUT", "20")),
            stats_interval=float(os.getenv("CCS_STATS_INTERVAL", "10")),
            log_level=os.getenv("CCS_LOG_LEVEL", "INFO"),
            log_format=os.getenv("CCS_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called from CCSServer.__init__ so a bad value is reported before
        any socket is created.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535 (0 = ephemeral).")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 64:
            raise ValueError("buffer_size must be >= 64")

        if self.session_timeout <= 0:
            raise ValueError("session_timeout must be > 0")

        if self.stats_interval <= 0:
            raise ValueError("stats_interval must be > 0")

        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log_format: {self.log_format!r}. Must be one of {LOG_FORMATS}."
            )
