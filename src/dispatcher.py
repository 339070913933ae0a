"""
Bounded worker pool that feeds upgrade jobs from a shared queue.
"""

import logging
import queue
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Deque, List, Optional, Sequence

from errors import QueueClosed
from models import ControllerState, OutcomeStatus, UpgradeJob, UpgradeOutcome

logger = logging.getLogger(__name__)

JobHandler = Callable[[UpgradeJob], UpgradeOutcome]


class JobQueue:
    """FIFO of upgrade jobs that can be closed to further submission."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._items: Deque[UpgradeJob] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def put(self, job: UpgradeJob) -> None:
        with self._cond:
            if self._closed:
                raise QueueClosed(f"cannot enqueue {job.service_name}: queue closed")
            if len(self._items) >= self.capacity:
                raise queue.Full
            self._items.append(job)
            self._cond.notify()

    def close(self) -> None:
        """No more jobs will be submitted; waiting consumers wake up."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def get(self) -> Optional[UpgradeJob]:
        """
        Take the next job, blocking while the queue is empty but still open.

        Returns:
            The next job, or None once the queue is empty and closed
        """
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if self._items:
                return self._items.popleft()
            return None

    def drain(self) -> List[UpgradeJob]:
        """Remove and return every job not yet taken by a worker."""
        with self._cond:
            items = list(self._items)
            self._items.clear()
            return items

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class Dispatcher:
    """Runs upgrade jobs on a fixed number of worker threads."""

    def __init__(self, parallelism: int, stop_event: Optional[threading.Event] = None):
        if parallelism < 1:
            raise ValueError(f"parallelism must be at least 1, got {parallelism}")
        self.parallelism = parallelism
        self.stop_event = stop_event or threading.Event()
        self._queue: Optional[JobQueue] = None
        self._cancelled: List[UpgradeJob] = []
        self._lock = threading.Lock()
        self.interrupted = False

    def dispatch(
        self, jobs: Sequence[UpgradeJob], handler: JobHandler
    ) -> List[UpgradeOutcome]:
        """
        Process every job exactly once and wait for all workers to exit.

        Args:
            jobs: Jobs to run
            handler: Called once per job; returns its outcome

        Returns:
            Outcomes of all jobs, including jobs cancelled before they started
        """
        job_queue = JobQueue(capacity=max(len(jobs), 1))
        for job in jobs:
            logger.debug(f"Inserting service {job.service_name}")
            job_queue.put(job)
        job_queue.close()
        self._queue = job_queue

        outcomes: List[UpgradeOutcome] = []
        with ThreadPoolExecutor(
            max_workers=self.parallelism, thread_name_prefix="upgrade-worker"
        ) as executor:
            futures = [
                executor.submit(self._worker, job_queue, handler)
                for _ in range(self.parallelism)
            ]
            pending = set(futures)
            while pending:
                try:
                    for future in as_completed(pending):
                        pending.discard(future)
                        outcomes.extend(future.result())
                except KeyboardInterrupt:
                    logger.warning("Interrupted, cancelling remaining upgrades...")
                    self.interrupted = True
                    self.cancel()

        with self._lock:
            # Jobs left behind when the stop event was set directly
            self._cancelled.extend(job_queue.drain())
            outcomes.extend(self._cancelled_outcome(job) for job in self._cancelled)
            self._cancelled = []
        return outcomes

    def cancel(self) -> None:
        """Stop handing out jobs and signal running jobs to abort."""
        self.stop_event.set()
        if self._queue is None:
            return
        drained = self._queue.drain()
        with self._lock:
            self._cancelled.extend(drained)
        if drained:
            logger.warning(f"Cancelled {len(drained)} job(s) before they started")

    def _worker(self, job_queue: JobQueue, handler: JobHandler) -> List[UpgradeOutcome]:
        name = threading.current_thread().name
        processed: List[UpgradeOutcome] = []

        while not self.stop_event.is_set():
            job = job_queue.get()
            if job is None:
                break
            logger.info(f"Upgrading {job.service_name} to {job.image_reference}")
            processed.append(self._run_job(job, handler, name))

        logger.debug(f"Worker {name} exiting after {len(processed)} job(s)")
        return processed

    @staticmethod
    def _run_job(job: UpgradeJob, handler: JobHandler, worker: str) -> UpgradeOutcome:
        start = time.time()
        try:
            outcome = handler(job)
        except Exception as e:
            logger.exception(f"Unexpected error upgrading {job.service_name}")
            end = time.time()
            outcome = UpgradeOutcome(
                service_name=job.service_name,
                image_reference=job.image_reference,
                status=OutcomeStatus.FAILED,
                final_state=ControllerState.ABORTED,
                reason=f"Unexpected error: {e}",
                error=e,
                start_time=start,
                end_time=end,
                duration_seconds=end - start,
            )
        outcome.worker = worker
        return outcome

    @staticmethod
    def _cancelled_outcome(job: UpgradeJob) -> UpgradeOutcome:
        return UpgradeOutcome(
            service_name=job.service_name,
            image_reference=job.image_reference,
            status=OutcomeStatus.SKIPPED,
            final_state=ControllerState.IDLE,
            reason="cancelled before start",
        )
