"""
=============================================================================
SESSION HANDLER
=============================================================================

One SessionHandler owns one accepted connection for its whole life and
runs on a worker thread of its own.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────────┐   line    ┌──────────────┐   reply   ┌──────────────┐
    │  AWAIT_LINE  │──────────►│  EVALUATING  │──────────►│   REPLIED    │
    └──────┬───────┘           └──────────────┘           └──────┬───────┘
           │ ▲                                                   │
           │ └───────────────────────────────────────────────────┘
           │
           │ EOF / idle timeout / read error / send failure
           ▼
    ┌──────────────┐
    │    CLOSED    │   socket shut down both ways, no more counter updates
    └──────────────┘

A malformed line is NOT a reason to close. The client gets ERROR, the
malformed counters go up, and the session waits for the next line.

=============================================================================
COUNTERS TOUCHED PER LINE
=============================================================================

    success:    requests +1, <OP> +1, result_sum +result   (cumulative + interval)
    malformed:  malformed +1                               (cumulative + interval)

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum

from .core.connection import Connection, LineTooLong
from .protocol import ERROR_REPLY, MalformedRequest, evaluate_line
from .stats import Statistics


logger = logging.getLogger(__name__)

# Per-request lines go to a separate logger so they can be enabled on
# their own:  logging.getLogger("ccserver.access").setLevel(logging.DEBUG)
access_logger = logging.getLogger("ccserver.access")


class SessionState(Enum):
    AWAIT_LINE = "await_line"
    EVALUATING = "evaluating"
    REPLIED = "replied"
    CLOSED = "closed"


@dataclass
class RequestLog:
    """
    Structured access-log entry for one request line.

    Fields:
        connection_id:  Connection.id, correlates lines of one session
        client_ip:      Remote address
        line:           The request line as received
        reply:          What was sent back (result or ERROR)
        reason:         Malformed reason, or "-" on success
        duration_ms:    Evaluation time
    """

    connection_id: str
    client_ip: str
    line: str
    reply: str
    reason: str
    duration_ms: float

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "client_ip": self.client_ip,
            "line": self.line,
            "reply": self.reply,
            "reason": self.reason,
            "duration_ms": round(self.duration_ms, 3),
        }

    def to_text(self) -> str:
        return (
            f'{self.client_ip} [{self.connection_id}] "{self.line}" -> '
            f'{self.reply} ({self.reason}) {self.duration_ms:.3f}ms'
        )


class SessionHandler:
    """
    Request/response loop for a single client.

    Usage:
        handler = SessionHandler(conn, stats)
        handler.run()        # blocks until the client leaves

    handle_line() is the socket-free core and can be driven directly:

        handler.handle_line("ADD 2 3")   # "5"
        handler.handle_line("DIV 7 0")   # "ERROR"
    """

    def __init__(self, conn: Connection, stats: Statistics, log_format: str = "text"):
        self.conn = conn
        self.stats = stats
        self.log_format = log_format
        self.state = SessionState.AWAIT_LINE
        self.requests_handled = 0

    def run(self):
        """Serve the connection until the peer leaves or goes idle."""
        logger.debug(f"[{self.conn.id}] Session started for {self.conn.client_ip}")

        with self.conn:
            while True:
                self.state = SessionState.AWAIT_LINE
                try:
                    line = self.conn.read_line()
                except LineTooLong as e:
                    logger.warning(f"[{self.conn.id}] {e}, closing")
                    break
                except OSError as e:
                    logger.debug(f"[{self.conn.id}] Read failed: {e}")
                    break

                if line is None:
                    break

                self.state = SessionState.EVALUATING
                reply = self.handle_line(line)

                if not self.conn.send_line(reply):
                    break
                self.state = SessionState.REPLIED

        self.state = SessionState.CLOSED
        logger.debug(
            f"[{self.conn.id}] Session for {self.conn.client_ip} closed "
            f"after {self.requests_handled} requests"
        )

    def handle_line(self, line: str) -> str:
        """
        Evaluate one request line, update statistics, return the reply text.
        """
        start_time = time.time()
        self.requests_handled += 1

        try:
            request, result = evaluate_line(line)
        except MalformedRequest as e:
            self.stats.record_malformed()
            reply, reason = ERROR_REPLY, e.reason
        else:
            self.stats.record_result(request.operation.value, result)
            reply, reason = str(result), "-"

        if access_logger.isEnabledFor(logging.DEBUG):
            entry = RequestLog(
                connection_id=self.conn.id,
                client_ip=self.conn.client_ip,
                line=line,
                reply=reply,
                reason=reason,
                duration_ms=(time.time() - start_time) * 1000,
            )
            if self.log_format == "json":
                access_logger.debug(json.dumps(entry.to_dict()))
            else:
                access_logger.debug(entry.to_text())

        return reply
