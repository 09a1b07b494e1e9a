"""
Unit tests for ActiveSessionRegistry.
"""

import threading

from ccserver.registry import ActiveSessionRegistry


class TestActiveSessionRegistry:
    def test_first_check_in_is_new(self):
        registry = ActiveSessionRegistry()

        assert registry.check_in("10.0.0.1") is False
        assert "10.0.0.1" in registry

    def test_second_check_in_is_reconnect(self):
        registry = ActiveSessionRegistry()
        registry.check_in("10.0.0.1")

        assert registry.check_in("10.0.0.1") is True
        assert len(registry) == 1

    def test_addresses_are_tracked_separately(self):
        registry = ActiveSessionRegistry()

        assert registry.check_in("10.0.0.1") is False
        assert registry.check_in("10.0.0.2") is False
        assert registry.snapshot() == {"10.0.0.1", "10.0.0.2"}

    def test_snapshot_is_a_copy(self):
        registry = ActiveSessionRegistry()
        registry.check_in("10.0.0.1")

        snapshot = registry.snapshot()
        snapshot.add("10.0.0.9")

        assert "10.0.0.9" not in registry

    def test_concurrent_check_in_reports_new_once(self):
        """Exactly one of many racing threads sees the address as new."""
        registry = ActiveSessionRegistry()
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(16)

        def work():
            barrier.wait()
            seen = registry.check_in("192.168.1.7")
            with lock:
                results.append(seen)

        threads = [threading.Thread(target=work) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(False) == 1
        assert results.count(True) == 15
