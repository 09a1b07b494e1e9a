"""
=============================================================================
STATISTICS AGGREGATOR
=============================================================================

Every session thread and the reporter share one Statistics object. It is
built from small independent counters so that two sessions updating
different counters never wait on each other.

=============================================================================
CUMULATIVE VS INTERVAL COUNTERS
=============================================================================

Each statistic is a PAIR of counters that are always bumped together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         CounterPair                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   cumulative   ──► never reset, grows for the process lifetime      │
    │   interval     ──► activity since the last report, reset each tick  │
    │                                                                      │
    │   t=0s   ADD 2 3        cumulative=1  interval=1                    │
    │   t=4s   SUB 9 1        cumulative=2  interval=2                    │
    │   t=10s  ── report ──   prints 2 | DIFF: 2, interval -> 0           │
    │   t=12s  MUL 3 3        cumulative=3  interval=1                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only the individual counter operations are atomic. A request touches
several counters (requests, per-operation, result sum) one after another,
so a report taken mid-update can be off by one request between counters.
Each counter still settles on the right value.

=============================================================================
WHY A LOCK PER COUNTER?
=============================================================================

Python has no atomic integer type. `x += 1` compiles to a load, an add and
a store, and a thread switch can land between them. Each AtomicCounter
therefore owns its own tiny lock that is held only for the duration of
one integer operation. There is no lock spanning several counters and no
lock shared between sessions beyond the counter they are touching.

=============================================================================
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple


class AtomicCounter:
    """
    Integer counter whose operations are individually atomic.

    Usage:
        counter = AtomicCounter()
        counter.increment()        # 1
        counter.add(41)            # 42
        counter.get_and_reset()    # returns 42, counter is now 0
    """

    __slots__ = ("_value", "_lock")

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def add(self, amount: int) -> int:
        """Add amount and return the new value."""
        with self._lock:
            self._value += amount
            return self._value

    def increment(self) -> int:
        """Add one and return the new value."""
        return self.add(1)

    def get(self) -> int:
        """Read the current value."""
        with self._lock:
            return self._value

    def get_and_reset(self) -> int:
        """Read the current value and set the counter back to zero."""
        with self._lock:
            value = self._value
            self._value = 0
            return value

    def __repr__(self) -> str:
        return f"AtomicCounter({self.get()})"


@dataclass(frozen=True)
class CounterReading:
    """One cumulative/interval pair as read at report time."""

    cumulative: int
    interval: int

    def to_dict(self) -> dict:
        return {"total": self.cumulative, "diff": self.interval}


class CounterPair:
    """
    A cumulative counter and its interval mirror.

    add() bumps both. read_and_reset() reads the cumulative value and
    atomically drains the interval value; it is meant for the reporter only.
    """

    __slots__ = ("cumulative", "interval")

    def __init__(self):
        self.cumulative = AtomicCounter()
        self.interval = AtomicCounter()

    def add(self, amount: int = 1) -> None:
        self.cumulative.add(amount)
        self.interval.add(amount)

    def read(self) -> CounterReading:
        """Non-destructive read of both counters."""
        return CounterReading(self.cumulative.get(), self.interval.get())

    def read_and_reset(self) -> CounterReading:
        """Read cumulative, then read-and-reset interval."""
        cumulative = self.cumulative.get()
        interval = self.interval.get_and_reset()
        return CounterReading(cumulative, interval)


# Labels used by the text report, in emission order.
REPORT_LABELS: Tuple[Tuple[str, str], ...] = (
    ("clients", "Connected clients"),
    ("requests", "Total requests"),
    ("malformed", "Incorrect requests"),
    ("result_sum", "Sum of results"),
)


@dataclass
class StatisticsReport:
    """
    A snapshot of every counter pair.

    Produced by Statistics.report() (interval counters drained) or
    Statistics.snapshot() (nothing reset).
    """

    clients: CounterReading
    requests: CounterReading
    malformed: CounterReading
    result_sum: CounterReading
    operations: Dict[str, CounterReading] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a dictionary for JSON output."""
        data = {key: getattr(self, key).to_dict() for key, _ in REPORT_LABELS}
        data["operations"] = {
            name: reading.to_dict() for name, reading in self.operations.items()
        }
        return data

    def lines(self) -> List[str]:
        """
        Format as the human-readable statistics block.

            --- Statistics ---
            Connected clients: 3 | DIFF: 1
            Total requests: 40 | DIFF: 7
            Incorrect requests: 2 | DIFF: 0
            Sum of results: 1234 | DIFF: 56
            ADD: 20 | DIFF: 4
        """
        lines = ["--- Statistics ---"]
        for key, label in REPORT_LABELS:
            reading = getattr(self, key)
            lines.append(f"{label}: {reading.cumulative} | DIFF: {reading.interval}")
        for name, reading in self.operations.items():
            lines.append(f"{name}: {reading.cumulative} | DIFF: {reading.interval}")
        return lines

    def to_text(self) -> str:
        return "\n".join(self.lines())


class Statistics:
    """
    Process-wide request statistics.

    One instance is created by CCSServer and handed by reference to the
    acceptor, every SessionHandler and the Reporter.

    Per-operation counters live in a dict keyed by operation name. A key is
    created the first time that operation completes successfully and is
    never removed. Creation takes a short lock; later increments only touch
    that operation's own counters.
    """

    def __init__(self):
        self.clients = CounterPair()
        self.requests = CounterPair()
        self.malformed = CounterPair()
        self.result_sum = CounterPair()

        self._operations: Dict[str, CounterPair] = {}
        self._operations_lock = threading.Lock()

    # =========================================================================
    # PRODUCERS: called from acceptor and session threads
    # =========================================================================

    def record_client(self) -> None:
        """A connection from a previously unseen address was accepted."""
        self.clients.add()

    def record_malformed(self) -> None:
        """A request line could not be evaluated."""
        self.malformed.add()

    def record_result(self, operation: str, result: int) -> None:
        """A request evaluated successfully to result."""
        self.requests.add()
        self.operation(operation).add()
        self.result_sum.add(result)

    def operation(self, name: str) -> CounterPair:
        """Return the counter pair for an operation, creating it on first use."""
        pair = self._operations.get(name)
        if pair is None:
            with self._operations_lock:
                pair = self._operations.setdefault(name, CounterPair())
        return pair

    def _operation_items(self) -> Iterator[Tuple[str, CounterPair]]:
        # Copy under the lock so a concurrent first-use insert cannot
        # change the dict while we iterate.
        with self._operations_lock:
            items = list(self._operations.items())
        return iter(items)

    # =========================================================================
    # CONSUMERS
    # =========================================================================

    def report(self) -> StatisticsReport:
        """
        Read every pair for a periodic report.

        Cumulative values are read, interval values are read and reset to
        zero. The four fixed pairs come first, then each operation.
        """
        clients = self.clients.read_and_reset()
        requests = self.requests.read_and_reset()
        malformed = self.malformed.read_and_reset()
        result_sum = self.result_sum.read_and_reset()
        operations = {
            name: pair.read_and_reset() for name, pair in self._operation_items()
        }
        return StatisticsReport(clients, requests, malformed, result_sum, operations)

    def snapshot(self) -> StatisticsReport:
        """Read every pair without resetting anything."""
        return StatisticsReport(
            clients=self.clients.read(),
            requests=self.requests.read(),
            malformed=self.malformed.read(),
            result_sum=self.result_sum.read(),
            operations={name: pair.read() for name, pair in self._operation_items()},
        )
