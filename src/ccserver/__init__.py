"""
=============================================================================
CCSERVER - Discoverable Arithmetic Request Server
=============================================================================

Clients find the server on the local network with a UDP broadcast probe,
then open a TCP session and send one arithmetic request per line:

    $ python -m ccserver 9876

    client ──UDP──► "CCS DISCOVER"        server ──► "CCS FOUND"
    client ──TCP──► "ADD 2 3"             server ──► "5"
    client ──TCP──► "DIV 7 0"             server ──► "ERROR"

Every ten seconds the server prints cumulative and per-interval counts of
clients, requests, malformed requests, the sum of results and the number
of times each operation was used.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    ccserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m ccserver <port>)
    ├── server.py            # CCSServer: wiring, startup, shutdown
    ├── config.py            # ServerConfig dataclass
    ├── session.py           # Per-connection request/response loop
    ├── stats.py             # Statistics aggregator (cumulative + interval)
    ├── registry.py          # New vs. reconnecting client registry
    ├── reporter.py          # Periodic statistics reporter thread
    ├── client.py            # Discovery + request helpers for clients
    ├── core/                # Low-level components
    │   ├── socket_server.py # TCP listener and accept loop
    │   ├── discovery.py     # UDP discovery responder
    │   ├── connection.py    # Line-oriented connection wrapper
    │   └── thread_pool.py   # Worker threads for sessions
    └── protocol/            # Pure protocol code, no I/O
        ├── messages.py      # Wire literals
        └── request.py       # Operation enum, parsing, evaluation

=============================================================================
QUICK START
=============================================================================

    from ccserver import CCSServer, ServerConfig

    server = CCSServer(ServerConfig(port=9876))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import CCSServer
from .config import ServerConfig
from .stats import Statistics
from .registry import ActiveSessionRegistry

__all__ = [
    "CCSServer",
    "ServerConfig",
    "Statistics",
    "ActiveSessionRegistry",
    "__version__",
]
