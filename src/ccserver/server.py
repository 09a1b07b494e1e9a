"""
=============================================================================
CCS SERVER - MAIN SERVER CLASS
=============================================================================

This module wires the components into one server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CCSServer                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Discovery thread      DiscoveryResponder.serve()    (UDP PORT)    │
    │                                                                      │
    │   Acceptor thread       SocketServer.serve()          (TCP PORT)    │
    │        │                                                             │
    │        └──► _handle_connection(conn)                                 │
    │                 ├── registry.check_in(ip)  → new / reconnecting     │
    │                 ├── stats.record_client()  (new only)               │
    │                 └── thread_pool.submit(SessionHandler.run)          │
    │                                                                      │
    │   Worker threads        SessionHandler.run()   one per session      │
    │                                                                      │
    │   Reporter thread       Reporter.run()         every stats_interval │
    │                                                                      │
    │   Shared by reference:  Statistics, ActiveSessionRegistry           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP AND SHUTDOWN
=============================================================================

    start()
        1. bind TCP (port 0 → the OS picks one)
        2. bind UDP on the same port number
        3. start pool, acceptor, responder, reporter
       Any bind failure is raised before a single thread is started.

    shutdown()
        1. stop accepting, stop the responder, stop the reporter
        2. wait up to shutdown_timeout for live sessions to end
        3. force-close whatever is left, stop the pool

=============================================================================
"""

import logging
import signal
import socket
import sys
import threading
import time
from typing import Dict, Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, ThreadPool, Connection, DiscoveryResponder
from .registry import ActiveSessionRegistry
from .reporter import Reporter
from .session import SessionHandler
from .stats import Statistics


logger = logging.getLogger(__name__)


class CCSServer:
    """
    The discoverable arithmetic server.

    Usage:
        server = CCSServer(ServerConfig(port=9876))
        server.run()                 # blocks until Ctrl+C / SIGTERM

    Embedded (tests):
        server = CCSServer(ServerConfig(host="127.0.0.1", port=0))
        server.start()               # returns once everything is bound
        ...                          # talk to server.port
        server.shutdown()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        stats: Optional[Statistics] = None,
        registry: Optional[ActiveSessionRegistry] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        # ─────────────────────────────────────────────────────────────────
        # SHARED STATE
        # ─────────────────────────────────────────────────────────────────
        self.stats = stats or Statistics()
        self.registry = registry or ActiveSessionRegistry()

        # ─────────────────────────────────────────────────────────────────
        # COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._discovery: Optional[DiscoveryResponder] = None
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._reporter = self._new_reporter()

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────
        self._sessions: Dict[str, Connection] = {}
        self._sessions_lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._running = False
        self._stop_requested = threading.Event()
        self._original_handlers: dict = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def port(self) -> int:
        """The shared TCP/UDP port, resolved after start()."""
        return self.address[1]

    @property
    def active_sessions(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    @property
    def discovery(self) -> Optional[DiscoveryResponder]:
        return self._discovery

    @property
    def reporter(self) -> Reporter:
        return self._reporter

    @property
    def thread_pool(self) -> ThreadPool:
        return self._thread_pool

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self):
        """
        Bind both sockets and start every background thread.

        Raises:
            OSError: If either socket cannot be bound. Nothing is left
                     running in that case.
        """
        if self._running:
            return

        self._socket_server.bind()
        port = self._socket_server.address[1]

        self._discovery = DiscoveryResponder(
            self.config.host,
            port,
            max_size=self.config.discovery_max_size,
        )
        try:
            self._discovery.bind()
        except OSError:
            self._socket_server.close()
            raise

        self._thread_pool.start()

        self._threads = [
            threading.Thread(
                target=self._socket_server.serve,
                args=(self._handle_connection,),
                name="Acceptor",
                daemon=True,
            ),
            threading.Thread(
                target=self._discovery.serve,
                name="Discovery",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

        # Threads start only once, so every start() gets a fresh reporter.
        self._reporter = self._new_reporter()
        self._reporter.start()
        self._running = True
        self._stop_requested.clear()

        logger.info(f"CCS started on port {port}")

    def run(self):
        """
        Start the server and block until interrupted.

        Installs SIGINT/SIGTERM handlers when called from the main thread.
        """
        self._setup_logging()
        self.start()
        self._print_startup_banner()
        self._setup_signals()

        try:
            while not self._stop_requested.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._restore_signals()
            self.shutdown()

    def _new_reporter(self) -> Reporter:
        return Reporter(
            self.stats,
            interval=self.config.stats_interval,
            log_format=self.config.log_format,
        )

    def request_stop(self):
        """Ask run() to return. Safe to call from a signal handler."""
        self._stop_requested.set()

    def shutdown(self):
        """
        Graceful shutdown with a bounded wait for live sessions.

        Safe to call more than once.
        """
        if not self._running:
            return
        self._running = False
        self._stop_requested.set()

        logger.info("Server shutting down...")

        # 1. No new connections, probes or reports.
        self._socket_server.shutdown()
        if self._discovery is not None:
            self._discovery.shutdown()
        self._reporter.stop(timeout=2.0)

        for thread in self._threads:
            thread.join(timeout=self._socket_server.poll_interval + 1.0)

        # 2. Let in-flight sessions finish on their own.
        deadline = time.time() + self.config.shutdown_timeout
        while self.active_sessions and time.time() < deadline:
            time.sleep(0.05)

        # 3. Force the rest closed; their read_line() returns None.
        with self._sessions_lock:
            remaining = list(self._sessions.values())
        if remaining:
            logger.warning(f"Closing {len(remaining)} sessions still open after drain timeout")
        for conn in remaining:
            conn.close()

        self._thread_pool.shutdown(wait=True, timeout=2.0)

        logger.info("Server stopped")

    def _print_startup_banner(self):
        host, port = self.address
        print(f"CCS started on port: {port}")
        print(f"Server is running on IP: {resolve_host_address()} (bound to {host})")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            stream=sys.stdout,
        )
        logging.getLogger("ccserver").setLevel(level)

    def _setup_signals(self):
        # signal.signal() may only be called from the main thread.
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.request_stop()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Classify and dispatch a freshly accepted connection.

        Runs in the acceptor thread, once per accept. The registry check
        only decides what is logged and counted; every connection gets a
        session either way.
        """
        client_ip = conn.client_ip

        if self.registry.check_in(client_ip):
            logger.info(f"Client reconnected from: {client_ip}")
        else:
            self.stats.record_client()
            logger.info(f"New client connected: {client_ip}")
            logger.debug(f"Known clients: {sorted(self.registry.snapshot())}")

        session = SessionHandler(conn, self.stats, log_format=self.config.log_format)

        with self._sessions_lock:
            self._sessions[conn.id] = conn

        try:
            submitted = self._thread_pool.submit(self._run_session, args=(session,))
        except RuntimeError:
            # Pool already shutting down.
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] Cannot start session, rejecting {client_ip}")
            self._forget(conn)
            conn.close()

    def _run_session(self, session: SessionHandler):
        try:
            session.run()
        finally:
            self._forget(session.conn)

    def _forget(self, conn: Connection):
        with self._sessions_lock:
            self._sessions.pop(conn.id, None)


def resolve_host_address() -> str:
    """Best-effort IP address of this host, for the startup banner."""
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"
