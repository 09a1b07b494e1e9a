"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking pieces. None of them know anything about
arithmetic or statistics; CCSServer wires them together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       DISCOVERY RESPONDER                            │
    │  • UDP socket on PORT                                                │
    │  • Answers b"CCS DISCOVER" with b"CCS FOUND"                         │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • TCP listening socket on the same PORT number                      │
    │  • accept() loop, wraps each client in a Connection                  │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Hands off new connections
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • One worker per live session, grows up to max_workers              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Newline framing, idle timeout, two-way close                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, LineTooLong
from .thread_pool import ThreadPool
from .discovery import DiscoveryResponder

__all__ = [
    "SocketServer",        # TCP listener + accept loop
    "Connection",          # Line-oriented client socket wrapper
    "ConnectionState",     # Enum for connection lifecycle states
    "LineTooLong",         # Raised by Connection.read_line
    "ThreadPool",          # Worker threads for sessions
    "DiscoveryResponder",  # UDP probe responder
]
