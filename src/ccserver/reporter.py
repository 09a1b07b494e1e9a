"""
Periodic statistics reporter.

Every `interval` seconds the reporter drains the interval counters of the
shared Statistics object and writes one statistics block to the
"ccserver.stats" logger:

    --- Statistics ---
    Connected clients: 3 | DIFF: 1
    Total requests: 40 | DIFF: 7
    Incorrect requests: 2 | DIFF: 0
    Sum of results: 1234 | DIFF: 56
    ADD: 20 | DIFF: 4
    DIV: 20 | DIFF: 3

With log_format="json" the same report is written as one JSON object.
The first report is emitted one full interval after start().
"""

import json
import logging
import threading
from typing import Optional

from .stats import Statistics, StatisticsReport


logger = logging.getLogger("ccserver.stats")


class Reporter(threading.Thread):
    """
    Daemon thread that reports statistics on a fixed period.

    A failure while reporting is logged and the next tick runs as usual;
    reporting never takes the server down.
    """

    def __init__(
        self,
        stats: Statistics,
        interval: float = 10.0,
        log_format: str = "text",
    ):
        super().__init__(name="Reporter", daemon=True)
        self.stats = stats
        self.interval = interval
        self.log_format = log_format

        self._stop_event = threading.Event()
        self.reports_emitted = 0
        self.last_report: Optional[StatisticsReport] = None

    def run(self):
        logger.debug(f"Reporter started, interval {self.interval}s")

        # Event.wait returns True once stop() is called.
        while not self._stop_event.wait(self.interval):
            try:
                self.report()
            except Exception as e:
                logger.exception(f"Statistics report failed: {e}")

        logger.debug("Reporter stopped")

    def report(self) -> StatisticsReport:
        """Take one report, emit it, and return it."""
        report = self.stats.report()

        if self.log_format == "json":
            logger.info(json.dumps(report.to_dict()))
        else:
            for line in report.lines():
                logger.info(line)

        self.last_report = report
        self.reports_emitted += 1
        return report

    def stop(self, timeout: Optional[float] = None):
        """Signal the reporter to stop and wait for it to exit."""
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
