"""
=============================================================================
SESSION WORKER POOL
=============================================================================

A session holds its worker for as long as the client stays connected,
which may be many seconds. The pool therefore cannot be a small fixed set
of threads: it grows whenever every worker is tied up.

    accept ──► submit(session.run) ──► [ job queue ] ──► worker thread
                                            │
                                            └── bounded by queue_size

=============================================================================
SIZING
=============================================================================

    start()      min_workers threads, kept for the life of the pool
    submit()     after queueing, if outstanding jobs (waiting + running)
                 exceed the thread count, one more thread is started,
                 never more than max_workers in total
    saturated    once max_workers jobs are outstanding, submit() returns
                 False and the caller drops the client instead of leaving
                 it queued with nobody reading its socket
    full queue   same, for a burst faster than threads can be spawned

=============================================================================
STOPPING
=============================================================================

shutdown() puts one None per thread on the queue. A worker that takes
None leaves its loop. Workers also poll a stop flag every idle_timeout
seconds so a pool whose queue is full still stops.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Job:
    """One queued call, normally SessionHandler.run for one client."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    queued_at: float = field(default_factory=time.time)

    def __call__(self):
        return self.func(*self.args, **self.kwargs)


class SessionWorker(threading.Thread):
    """Pulls jobs off the shared queue until told to stop."""

    def __init__(self, jobs: queue.Queue, number: int, idle_timeout: float):
        # Daemon: a client that never disconnects must not pin the process.
        super().__init__(name=f"Session-{number}", daemon=True)
        self.jobs = jobs
        self.number = number
        self.idle_timeout = idle_timeout
        self.state = WorkerState.IDLE
        self.completed = 0
        self.failed = 0
        self._stop_flag = threading.Event()

    def run(self):
        while not self._stop_flag.is_set():
            try:
                job = self.jobs.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if job is None:
                    break
                self._run_job(job)
            finally:
                self.jobs.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} exited after {self.completed} sessions")

    def _run_job(self, job: Job):
        self.state = WorkerState.BUSY
        waited = time.time() - job.queued_at
        if waited > 1.0:
            logger.debug(f"{self.name} picked up a session queued {waited:.1f}s ago")

        try:
            job()
            self.completed += 1
        except Exception as e:
            logger.exception(f"{self.name} session crashed: {e}")
            self.failed += 1
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_flag.set()


class ThreadPool:
    """
    Growable pool of session workers.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=256)
        pool.start()
        if not pool.submit(session.run):
            conn.close()
        pool.shutdown(timeout=2)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 256,
        queue_size: int = 128,
        idle_timeout: float = 1.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue(maxsize=queue_size)
        self._workers: list[SessionWorker] = []
        self._workers_lock = threading.Lock()
        self._started = False
        self._closing = False
        self._spawned = 0

    def start(self):
        if self._started:
            return
        self._started = True
        self._closing = False
        # Leftover stop markers from an earlier shutdown must not reach new workers.
        self._jobs = queue.Queue(maxsize=self.queue_size)
        for _ in range(self.min_workers):
            self._spawn()
        logger.info(f"Session pool started with {self.min_workers} workers")

    def _spawn(self) -> bool:
        """Start one more worker unless the cap is reached."""
        with self._workers_lock:
            if len(self._workers) >= self.max_workers:
                return False
            worker = SessionWorker(self._jobs, self._spawned, self.idle_timeout)
            self._spawned += 1
            self._workers.append(worker)
        worker.start()
        return True

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = False,
        queue_timeout: Optional[float] = None,
    ) -> bool:
        """
        Queue func(*args, **kwargs) for a worker.

        Every accepted job starts on a worker at once or as soon as a
        newly spawned thread is up. Once max_workers jobs are outstanding
        the job is refused rather than parked behind running sessions.

        Returns:
            False if max_workers jobs are already outstanding or the
            queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._closing:
            raise RuntimeError("Session pool is not running")

        if self.outstanding_jobs >= self.max_workers:
            logger.warning(f"All {self.max_workers} session workers busy")
            return False

        try:
            self._jobs.put(Job(func, args, kwargs or {}), block=block, timeout=queue_timeout)
        except queue.Full:
            logger.warning(f"Session queue full ({self.queue_size} waiting)")
            return False

        # unfinished_tasks counts waiting and running jobs alike, so a
        # worker that has not yet flipped to BUSY is still accounted for.
        with self._workers_lock:
            threads = len(self._workers)
        if self._jobs.unfinished_tasks > threads and self._spawn():
            logger.debug(f"Session pool grew to {threads + 1} workers")
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop every worker.

        Args:
            wait: First give queued jobs up to `timeout` seconds to be
                  picked up.
        """
        if not self._started:
            return
        self._closing = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._jobs.empty():
                if deadline is not None and time.time() > deadline:
                    logger.warning("Session pool stopped with jobs still queued")
                    break
                time.sleep(0.05)

        with self._workers_lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.stop()
            try:
                self._jobs.put_nowait(None)
            except queue.Full:
                pass
        for worker in workers:
            worker.join(timeout=2.0)

        self._started = False
        logger.info(f"Session pool stopped ({len(workers)} workers)")

    # =========================================================================
    # MONITORING
    # =========================================================================

    def _count(self, state: WorkerState) -> int:
        with self._workers_lock:
            return sum(1 for w in self._workers if w.state == state)

    @property
    def active_workers(self) -> int:
        with self._workers_lock:
            return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        return self._count(WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return self._count(WorkerState.IDLE)

    @property
    def outstanding_jobs(self) -> int:
        """Jobs queued or still running."""
        return self._jobs.unfinished_tasks

    @property
    def pending_tasks(self) -> int:
        return self._jobs.qsize()

    @property
    def stats(self) -> dict:
        with self._workers_lock:
            workers = list(self._workers)
        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "jobs": {
                "queued": self._jobs.qsize(),
                "completed": sum(w.completed for w in workers),
                "failed": sum(w.failed for w in workers),
            },
        }
