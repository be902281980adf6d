import logging
import signal
from typing import Iterator, Optional

import database
from config import Config
from database import JobRecord
from executor import run_job
from lockable import LockManager
from models import WorkerState
from registry import JobRegistry
from storage import JobStorage, normalize_queue
from utils import clock

logger = logging.getLogger(__name__)

# Longest uninterrupted sleep, so a stop request is handled quickly
SLEEP_SLICE = 0.5


class Worker:
    """
    Execute the due jobs of a queue in a loop.

    The worker is meant to be started by systemd, or any other kind of
    "init" service, which restarts it if it crashes. It stops on SIGINT and
    SIGTERM, after the job in progress is finished.

    queue selects the jobs of the given queue ("all" for every queue).
    Numbers at the end of the name are ignored, so workers can be named
    fetchers1, fetchers2, etc.

    stop_after sets a maximum number of jobs to run (0 means infinite).

    sleep_duration is the pause in seconds when there is no job to run.
    """

    def __init__(
        self,
        queue: str = "all",
        stop_after: int = 0,
        sleep_duration: Optional[float] = None,
        storage: Optional[JobStorage] = None,
        registry: Optional[JobRegistry] = None,
        config: Optional[Config] = None,
    ):
        cfg = config or Config()
        self.queue = normalize_queue(queue)
        self.stop_after = stop_after
        if sleep_duration is None:
            sleep_duration = cfg.get("sleep_duration")
        self.sleep_duration = float(sleep_duration)
        self.lock_timeout = int(cfg.get("lock_timeout"))
        self.max_attempts = int(cfg.get("max_attempts"))
        self.storage = storage or JobStorage()
        self.registry = registry
        self.lock_manager = LockManager(JobRecord, lock_timeout=self.lock_timeout)
        self.state = WorkerState.STARTING
        self.count_jobs = 0

    @property
    def is_watching(self) -> bool:
        return self.state in (WorkerState.POLLING, WorkerState.EXECUTING)

    def stop(self):
        """Ask the worker to stop once the current job is done."""
        if self.state is not WorkerState.STOPPED:
            self.state = WorkerState.STOPPING

    def _handle_signal(self, signum, frame):
        logger.info("[worker-%s] received %s, stopping", self.queue, signal.Signals(signum).name)
        self.stop()

    def _install_signal_handlers(self):
        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    def _sleep(self):
        remaining = self.sleep_duration
        while remaining > 0 and self.state is WorkerState.POLLING:
            step = min(SLEEP_SLICE, remaining)
            clock.sleep(step)
            remaining -= step

    def watch(self, handle_signals: bool = True) -> Iterator[str]:
        """Run the jobs loop, yielding a line for each executed job."""
        previous_handlers = self._install_signal_handlers() if handle_signals else {}
        if self.state is WorkerState.STARTING:
            self.state = WorkerState.POLLING

        logger.info("[worker-%s] started", self.queue)
        yield f"[Job worker ({self.queue}) started]"

        try:
            while self.state is WorkerState.POLLING:
                job_id = self.storage.find_next_job_id(
                    self.queue,
                    lock_timeout=self.lock_timeout,
                    max_attempts=self.max_attempts,
                )
                if job_id is None:
                    self._sleep()
                    continue

                self.state = WorkerState.EXECUTING
                result = run_job(
                    job_id,
                    storage=self.storage,
                    registry=self.registry,
                    lock_manager=self.lock_manager,
                )

                # Long running workers must not keep the same connection forever
                database.close_connections()

                self.count_jobs += 1
                if self.state is WorkerState.EXECUTING:
                    self.state = WorkerState.POLLING
                if self.stop_after > 0 and self.count_jobs >= self.stop_after:
                    self.stop()

                yield str(result)
        finally:
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)
            self.state = WorkerState.STOPPED

        logger.info("[worker-%s] stopped after %d job(s)", self.queue, self.count_jobs)
        yield f"[Job worker ({self.queue}) stopped]"
