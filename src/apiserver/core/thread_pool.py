"""
=============================================================================
WORKER POOL
=============================================================================

Bounded pool of worker threads that serve accepted connections.

    accept loop ──submit(job)──► [ job queue ] ──get()──► Worker-0
                                                 ──────► Worker-1
                                                 ──────► ...

    min_workers   started eagerly by start()
    max_workers   upper bound; a worker is added when a job arrives and
                  no idle worker is left to take it
    max_queue     jobs waiting beyond that are refused (submit → False),
                  which the server answers with 503

Every submitted job claims one idle worker. When none is idle, a worker is
spawned for it. At max_workers the job waits, and the next worker to
finish takes it instead of going idle.

Shutdown uses poison pills: one ``None`` per worker is queued after the
pending jobs, and each worker exits when it takes one.

=============================================================================
"""

import threading
import queue
import time
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


@dataclass
class Job:
    """A deferred call: ``func(*args)`` run by whichever worker is free."""
    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.monotonic)


class Worker(threading.Thread):
    """
    One pool thread.

    A job that raises is logged; the worker keeps running. ``on_idle`` is
    called after each job, before the worker waits for the next one.
    """

    def __init__(
        self,
        jobs: "queue.Queue[Optional[Job]]",
        worker_id: int,
        on_idle: Callable[[], None],
    ):
        super().__init__(name=f"apiserver-worker-{worker_id}", daemon=True)
        self.jobs = jobs
        self.worker_id = worker_id
        self.on_idle = on_idle

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            job = self.jobs.get()
            try:
                if job is None:
                    break
                self._execute(job)
            finally:
                self.jobs.task_done()
            self.on_idle()

        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, job: Job):
        start_time = time.monotonic()
        try:
            job.func(*job.args)
        except Exception as e:
            elapsed = time.monotonic() - start_time
            logger.exception(f"Worker {self.worker_id} job failed after {elapsed:.3f}s: {e}")


class ThreadPool:
    """
    Fixed-floor, bounded-ceiling thread pool.

        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        if not pool.submit(serve, conn):
            reject(conn)          # queue full
        ...
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        max_queue: int = 100,
    ):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"invalid worker bounds: min={min_workers}, max={max_workers}"
            )
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue = max_queue

        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue(maxsize=max_queue)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        # Workers with no claimed job
        self._idle = 0
        # Queued jobs that found no idle worker and no room to spawn one
        self._unclaimed = 0
        self._started = False
        self._closing = False

    def start(self) -> None:
        """Start ``min_workers`` threads. A second call does nothing."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_locked()
            self._idle = self.min_workers
            self._unclaimed = 0
        self._started = True

    def _spawn_locked(self) -> Worker:
        worker = Worker(
            self._jobs,
            worker_id=len(self._workers),
            on_idle=self._worker_idle,
        )
        self._workers.append(worker)
        worker.start()
        return worker

    def _worker_idle(self) -> None:
        with self._lock:
            if self._unclaimed > 0:
                self._unclaimed -= 1
            else:
                self._idle += 1

    def submit(self, func: Callable[..., Any], *args: Any) -> bool:
        """
        Queue ``func(*args)``.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: The pool is not running.
        """
        if not self._started or self._closing:
            raise RuntimeError("Thread pool is not running")

        with self._lock:
            try:
                self._jobs.put_nowait(Job(func=func, args=args))
            except queue.Full:
                logger.warning(f"Job queue full ({self.max_queue}), rejecting job")
                return False

            if self._idle > 0:
                self._idle -= 1
            elif len(self._workers) < self.max_workers:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._spawn_locked()
            else:
                self._unclaimed += 1

        return True

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """
        Stop all workers.

        Args:
            wait: Let queued jobs finish first. Otherwise they are dropped.
            timeout: Seconds to wait for each worker to exit.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._closing = True

        if not wait:
            self._drain()

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            # Blocking put: pills go behind the jobs still queued.
            self._jobs.put(None)

        for worker in workers:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning(f"Worker {worker.worker_id} did not stop in {timeout}s")

        with self._lock:
            self._workers.clear()
            self._idle = 0
            self._unclaimed = 0
        self._started = False
        self._closing = False
        logger.info("Thread pool shutdown complete")

    def _drain(self) -> None:
        while True:
            try:
                self._jobs.get_nowait()
            except queue.Empty:
                return
            self._jobs.task_done()

    @property
    def size(self) -> int:
        return len(self._workers)
