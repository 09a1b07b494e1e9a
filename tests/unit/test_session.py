"""
Unit tests for SessionHandler.
"""

import logging
import socket
import threading

import pytest

from ccserver.session import SessionHandler, SessionState, RequestLog
from ccserver.stats import CounterReading


@pytest.fixture
def session(connection_pair, stats):
    conn, peer = connection_pair
    return SessionHandler(conn, stats), peer


def run_in_thread(handler: SessionHandler) -> threading.Thread:
    thread = threading.Thread(target=handler.run, daemon=True)
    thread.start()
    return thread


class TestHandleLine:
    """Socket-free tests of handle_line."""

    def test_success_reply_and_counters(self, session, stats):
        handler, _ = session

        assert handler.handle_line("ADD 2 3") == "5"

        snapshot = stats.snapshot()
        assert snapshot.requests == CounterReading(1, 1)
        assert snapshot.result_sum == CounterReading(5, 5)
        assert snapshot.operations["ADD"] == CounterReading(1, 1)
        assert snapshot.malformed == CounterReading(0, 0)

    @pytest.mark.parametrize("line", ["DIV 7 0", "FOO 1 2", "ADD 1", "ADD x 2", ""])
    def test_malformed_reply_and_counters(self, session, stats, line):
        handler, _ = session

        assert handler.handle_line(line) == "ERROR"

        snapshot = stats.snapshot()
        assert snapshot.malformed == CounterReading(1, 1)
        assert snapshot.requests == CounterReading(0, 0)
        assert snapshot.operations == {}

    def test_mixed_counts(self, session, stats):
        handler, _ = session
        for line in ["ADD 1 1", "SUB 5 2", "MUL 2 2", "bad", "DIV 1 0"]:
            handler.handle_line(line)

        snapshot = stats.snapshot()
        assert snapshot.requests.cumulative == 3
        assert snapshot.malformed.cumulative == 2
        assert snapshot.result_sum.cumulative == 9
        assert handler.requests_handled == 5

    def test_access_log_at_debug(self, session, caplog):
        handler, _ = session

        with caplog.at_level(logging.DEBUG, logger="ccserver.access"):
            handler.handle_line("DIV 7 0")

        messages = [r.getMessage() for r in caplog.records if r.name == "ccserver.access"]
        assert len(messages) == 1
        assert '"DIV 7 0" -> ERROR (division_by_zero)' in messages[0]
        assert "10.0.0.5" in messages[0]


class TestRun:
    """Tests of the full read/evaluate/reply loop over a socket pair."""

    def test_replies_in_order(self, session, read_lines):
        handler, peer = session
        thread = run_in_thread(handler)

        peer.sendall(b"ADD 2 3\nSUB 10 4\nMUL -3 5\nDIV 7 2\nDIV 7 0\nFOO 1 2\nADD 1\n")
        replies = read_lines(peer, 7)

        assert replies == ["5", "6", "-15", "3", "ERROR", "ERROR", "ERROR"]

        peer.shutdown(socket.SHUT_WR)
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert handler.state == SessionState.CLOSED

    def test_malformed_line_keeps_session_open(self, session, read_lines):
        handler, peer = session
        thread = run_in_thread(handler)

        peer.sendall(b"nonsense\n")
        assert read_lines(peer, 1) == ["ERROR"]

        peer.sendall(b"ADD 40 2\n")
        assert read_lines(peer, 1) == ["42"]

        peer.shutdown(socket.SHUT_WR)
        thread.join(timeout=5)

    def test_crlf_client(self, session, read_lines):
        handler, peer = session
        thread = run_in_thread(handler)

        peer.sendall(b"add 2 3\r\n")
        assert read_lines(peer, 1) == ["5"]

        peer.shutdown(socket.SHUT_WR)
        thread.join(timeout=5)

    def test_unterminated_last_line_is_answered(self, session, read_lines):
        handler, peer = session
        thread = run_in_thread(handler)

        peer.sendall(b"MUL 6 7")
        peer.shutdown(socket.SHUT_WR)

        assert read_lines(peer, 1) == ["42"]
        thread.join(timeout=5)
        assert not thread.is_alive()

    def test_line_too_long_closes_session(self, session, stats):
        handler, peer = session
        thread = run_in_thread(handler)

        peer.sendall(b"ADD " + b"1" * 200 + b" 2\n")

        assert peer.recv(64) == b""
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert stats.snapshot().malformed.cumulative == 0

    def test_peer_close_ends_session(self, session):
        handler, peer = session
        thread = run_in_thread(handler)

        peer.close()

        thread.join(timeout=5)
        assert not thread.is_alive()
        assert handler.conn.is_closed


class TestRequestLog:
    def test_to_dict(self):
        entry = RequestLog("abcd1234", "10.0.0.5", "ADD 2 3", "5", "-", 0.12345)

        assert entry.to_dict() == {
            "connection_id": "abcd1234",
            "client_ip": "10.0.0.5",
            "line": "ADD 2 3",
            "reply": "5",
            "reason": "-",
            "duration_ms": 0.123,
        }

    def test_to_text(self):
        entry = RequestLog("abcd1234", "10.0.0.5", "FOO 1 2", "ERROR", "operation", 0.5)

        assert entry.to_text() == '10.0.0.5 [abcd1234] "FOO 1 2" -> ERROR (operation) 0.500ms'
