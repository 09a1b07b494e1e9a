"""
Unit tests for the UDP DiscoveryResponder.
"""

import logging
import socket
import threading

import pytest

from ccserver.core import DiscoveryResponder
from ccserver.protocol import DISCOVERY_PROBE, DISCOVERY_REPLY


@pytest.fixture
def responder():
    """A responder bound to an ephemeral loopback port, serving in a thread."""
    resp = DiscoveryResponder("127.0.0.1", 0, poll_interval=0.1)
    resp.bind()
    thread = threading.Thread(target=resp.serve, daemon=True)
    thread.start()

    yield resp

    resp.shutdown()
    resp.wait_stopped(timeout=2)


@pytest.fixture
def udp_client():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.settimeout(0.5)
    yield sock
    sock.close()


class TestDiscoveryResponder:
    def test_probe_gets_reply(self, responder, udp_client):
        udp_client.sendto(DISCOVERY_PROBE, responder.address)

        data, sender = udp_client.recvfrom(1024)

        assert data == DISCOVERY_REPLY
        assert sender == responder.address

    def test_wrong_message_is_ignored(self, responder, udp_client):
        udp_client.sendto(b"HELLO", responder.address)

        with pytest.raises(socket.timeout):
            udp_client.recvfrom(1024)

    def test_lowercase_probe_is_ignored(self, responder, udp_client):
        udp_client.sendto(b"ccs discover", responder.address)

        with pytest.raises(socket.timeout):
            udp_client.recvfrom(1024)

    def test_oversized_datagram_is_ignored(self, responder, udp_client):
        udp_client.sendto(DISCOVERY_PROBE + b"\n", responder.address)

        with pytest.raises(socket.timeout):
            udp_client.recvfrom(1024)

    def test_keeps_serving_after_bad_datagram(self, responder, udp_client):
        udp_client.sendto(b"x" * 2000, responder.address)
        udp_client.sendto(DISCOVERY_PROBE, responder.address)

        data, _ = udp_client.recvfrom(1024)

        assert data == DISCOVERY_REPLY
        assert responder.datagrams_ignored == 1

    def test_shutdown_stops_loop(self):
        resp = DiscoveryResponder("127.0.0.1", 0, poll_interval=0.1)
        resp.bind()
        thread = threading.Thread(target=resp.serve, daemon=True)
        thread.start()

        resp.shutdown()

        assert resp.wait_stopped(timeout=2)
        thread.join(timeout=2)
        assert not thread.is_alive()

    def test_socket_error_stops_loop(self, caplog):
        """A broken socket ends the responder with an ERROR log."""
        resp = DiscoveryResponder("127.0.0.1", 0, poll_interval=0.1)
        resp.bind()
        thread = threading.Thread(target=resp.serve, daemon=True)

        with caplog.at_level(logging.ERROR, logger="ccserver.core.discovery"):
            thread.start()
            resp._socket.close()
            assert resp.wait_stopped(timeout=2)

        assert not resp.is_running
        assert any("UDP discovery error" in r.getMessage() for r in caplog.records)

    def test_bind_conflict_raises(self):
        holder = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        holder.bind(("127.0.0.1", 0))
        try:
            resp = DiscoveryResponder("127.0.0.1", holder.getsockname()[1])
            with pytest.raises(OSError):
                resp.bind()
        finally:
            holder.close()


class TestHandleDatagram:
    """handle_datagram() decisions that do not send anything."""

    def test_rejections_return_false(self):
        resp = DiscoveryResponder("127.0.0.1", 0)

        assert resp.handle_datagram(b"CCS DISCOVER!", ("10.0.0.1", 5000)) is False
        assert resp.handle_datagram(b"CCS FOUND", ("10.0.0.1", 5000)) is False
        assert resp.handle_datagram(b"", ("10.0.0.1", 5000)) is False
        assert resp.datagrams_ignored == 3
