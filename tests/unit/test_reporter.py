"""
Unit tests for the periodic statistics Reporter.
"""

import json
import logging
import time

from ccserver.reporter import Reporter


def stats_messages(caplog):
    return [r.getMessage() for r in caplog.records if r.name == "ccserver.stats"]


class TestReport:
    """Tests for a single Reporter.report() call."""

    def test_text_report(self, stats, caplog):
        stats.record_client()
        stats.record_result("ADD", 5)
        reporter = Reporter(stats)

        with caplog.at_level(logging.INFO, logger="ccserver.stats"):
            reporter.report()

        messages = stats_messages(caplog)
        assert messages[0] == "--- Statistics ---"
        assert "Connected clients: 1 | DIFF: 1" in messages
        assert "Total requests: 1 | DIFF: 1" in messages
        assert "Sum of results: 5 | DIFF: 5" in messages
        assert "ADD: 1 | DIFF: 1" in messages
        assert reporter.reports_emitted == 1

    def test_interval_resets_between_reports(self, stats, caplog):
        stats.record_result("MUL", 4)
        reporter = Reporter(stats)
        reporter.report()

        with caplog.at_level(logging.INFO, logger="ccserver.stats"):
            report = reporter.report()

        assert report.requests.cumulative == 1
        assert report.requests.interval == 0
        assert "MUL: 1 | DIFF: 0" in stats_messages(caplog)
        assert reporter.last_report is report

    def test_json_report(self, stats, caplog):
        stats.record_malformed()
        reporter = Reporter(stats, log_format="json")

        with caplog.at_level(logging.INFO, logger="ccserver.stats"):
            reporter.report()

        messages = stats_messages(caplog)
        assert len(messages) == 1
        data = json.loads(messages[0])
        assert data["malformed"] == {"total": 1, "diff": 1}
        assert data["operations"] == {}


class TestThread:
    """Tests for the reporter thread."""

    def test_reports_periodically(self, stats):
        reporter = Reporter(stats, interval=0.05)
        reporter.start()
        try:
            deadline = time.time() + 5
            while reporter.reports_emitted < 2 and time.time() < deadline:
                time.sleep(0.01)
        finally:
            reporter.stop(timeout=2)

        assert reporter.reports_emitted >= 2
        assert not reporter.is_alive()

    def test_no_report_before_first_interval(self, stats):
        reporter = Reporter(stats, interval=60)
        reporter.start()
        reporter.stop(timeout=2)

        assert reporter.reports_emitted == 0
        assert not reporter.is_alive()

    def test_failure_does_not_stop_reporting(self, stats, monkeypatch, caplog):
        calls = []
        original = stats.report

        def flaky_report():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return original()

        monkeypatch.setattr(stats, "report", flaky_report)
        reporter = Reporter(stats, interval=0.05)

        with caplog.at_level(logging.ERROR, logger="ccserver.stats"):
            reporter.start()
            try:
                deadline = time.time() + 5
                while reporter.reports_emitted < 1 and time.time() < deadline:
                    time.sleep(0.01)
            finally:
                reporter.stop(timeout=2)

        assert reporter.reports_emitted >= 1
        assert any("Statistics report failed" in m for m in stats_messages(caplog))
