"""
Background embedding worker pool.

Fire-and-forget embedding writes go through a bounded queue consumed by a
small pool of threads. Each job is retried with exponential backoff; a job
that still fails is logged and counted, never raised to the submitter.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class EmbeddingJob:
    """One queued write: embed text and store it on table.id."""

    table: str
    id: Any
    text: str
    source: str = "parsed"


class EmbeddingWorkerPool:
    """
    Bounded thread pool for background embedding writes.

    Example:
        with EmbeddingWorkerPool(handler, num_workers=2) as pool:
            pool.submit(EmbeddingJob("documents", 7, text))
        # exiting drains the queue
    """

    def __init__(
        self,
        handler: Callable[[Any], Any],
        num_workers: int = 2,
        max_queue_size: int = 1000,
        max_attempts: int = 3,
        retry_wait_min: float = 0.5,
        retry_wait_max: float = 10.0,
    ):
        """
        Args:
            handler: Called with each job; raising triggers a retry
            num_workers: Worker threads
            max_queue_size: Pending jobs before submit() starts refusing
            max_attempts: Attempts per job, including the first
            retry_wait_min: Minimum backoff between attempts (seconds)
            retry_wait_max: Maximum backoff between attempts (seconds)
        """
        if num_workers <= 0:
            raise InvalidInputError("num_workers must be positive")
        if max_attempts <= 0:
            raise InvalidInputError("max_attempts must be positive")

        self.handler = handler
        self.num_workers = num_workers
        self.max_attempts = max_attempts
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max

        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._accepting = False

        self.submitted = 0
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._threads)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker threads. Calling twice is a no-op."""
        with self._lock:
            if self._threads:
                return
            self._accepting = True
            for i in range(self.num_workers):
                thread = threading.Thread(
                    target=self._run, name=f"embedding-worker-{i}", daemon=True
                )
                thread.start()
                self._threads.append(thread)
        logger.debug(f"Started {self.num_workers} embedding workers")

    def submit(self, job: Any) -> bool:
        """
        Queue a job without blocking.

        Returns:
            True if accepted; False if the pool is stopped or the queue is full
        """
        # shutdown() clears _accepting under the same lock, so an accepted
        # job is always queued ahead of the stop markers.
        with self._lock:
            if not self._accepting:
                self.dropped += 1
                reason = "pool is not running"
            else:
                try:
                    self._queue.put_nowait(job)
                except queue.Full:
                    self.dropped += 1
                    reason = f"queue full ({self._queue.maxsize})"
                else:
                    self.submitted += 1
                    return True

        logger.warning(f"Embedding {reason}, dropping {job!r}")
        return False

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.retry_wait_min, min=self.retry_wait_min, max=self.retry_wait_max
            ),
            retry=retry_if_not_exception_type(InvalidInputError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _process(self, job: Any) -> None:
        try:
            self._retrying()(self.handler, job)
        except Exception as e:
            with self._lock:
                self.failed += 1
            logger.error(f"Embedding job {job!r} failed: {e}")
            return

        with self._lock:
            self.completed += 1

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._process(job)
            finally:
                self._queue.task_done()

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._queue.join()

    def shutdown(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop accepting jobs and stop the workers.

        Args:
            drain: Finish queued jobs first; otherwise discard them (counted
                as dropped)
            timeout: Max seconds to wait for the workers
        """
        with self._lock:
            self._accepting = False
            threads = list(self._threads)
        if not threads:
            return

        if not drain:
            discarded = 0
            while True:
                try:
                    job = self._queue.get_nowait()
                except queue.Empty:
                    break
                if job is not _STOP:
                    discarded += 1
                self._queue.task_done()
            with self._lock:
                self.dropped += discarded
            if discarded:
                logger.warning(f"Discarded {discarded} pending embedding jobs")

        for _ in threads:
            self._queue.put(_STOP)

        deadline = time.monotonic() + timeout if timeout is not None else None
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)

        with self._lock:
            self._threads = [t for t in threads if t.is_alive()]

        logger.debug(
            f"Embedding workers stopped: {self.completed} completed, "
            f"{self.failed} failed, {self.dropped} dropped"
        )

    def stats(self) -> dict:
        with self._lock:
            return {
                "submitted": self.submitted,
                "completed": self.completed,
                "failed": self.failed,
                "dropped": self.dropped,
                "pending": self._queue.qsize(),
            }

    def __enter__(self) -> "EmbeddingWorkerPool":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(drain=True)
