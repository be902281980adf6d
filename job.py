"""
Base class of the asynchronous jobs.

Jobs are executed by one or several workers (see `worker.Worker`). A job
type inherits from Job, implements a `perform()` method and is registered
so workers can rebuild it from the database:

    from job import Job
    from registry import register

    @register
    class MyJob(Job):
        def perform(self, param):
            ...

Then, it can be executed immediately, or delayed for later:

    my_job = MyJob()
    my_job.perform('foo')                     # right now, in this process
    my_job.perform_asap('foo')                # as soon as a worker is free
    my_job.perform_later(clock.from_now(1, 'hour'), 'foo')

Arguments are stored as JSON, so only str, int, bool and None are accepted.

A job repeats over time, like a cron job, if it has a frequency. The
frequency is a relative modifier which must move time forward:

    @register
    class MyJob(Job):
        frequency = '+1 hour'
        queue = 'fetchers'

Queues allow to dispatch the jobs across different workers (default queue
is "default"). When a job fails, the error is saved in `last_error`.
"""
from datetime import datetime
from typing import Optional

from backoff import check_frequency, next_occurrence, next_retry_at
from errors import SchedulingInvariantViolation
from models import validate_args
from storage import FIELDS, JobStorage
from utils import clock


def job_name(cls) -> str:
    """Registry key of a job class, unless it has been registered under another name."""
    return cls.__dict__.get("job_name") or f"{cls.__module__}.{cls.__qualname__}"


class Job:
    job_name: Optional[str] = None
    queue = "default"
    frequency = ""

    def __init__(self):
        self.id = None
        self.name = job_name(type(self))
        self.args = []
        self.perform_at = None
        self.queue = type(self).queue
        self.frequency = type(self).frequency
        self.locked_at = None
        self.number_attempts = 0
        self.last_error = ""
        self.failed_at = None
        self.created_at = None
        self.updated_at = None

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, queue='{self.queue}', perform_at={self.perform_at})>"

    def populate(self, record):
        """Copy the columns of a database row into the job."""
        for field in ("id", "created_at", "updated_at") + FIELDS:
            setattr(self, field, getattr(record, field))
        return self

    def perform_asap(self, *args, storage: Optional[JobStorage] = None) -> int:
        """Store the job to be executed by a worker as soon as possible."""
        return self.perform_later(clock.now(), *args, storage=storage)

    def perform_later(self, perform_at: datetime, *args, storage: Optional[JobStorage] = None) -> int:
        """Store the job to be executed by a worker at the given time."""
        self.args = validate_args(args)
        if self.frequency:
            check_frequency(self.frequency, perform_at)
        self.perform_at = perform_at

        storage = storage or JobStorage()
        if self.id is None:
            storage.add_job(self)
        else:
            storage.save(self)
        return self.id

    def next_perform_at(self) -> datetime:
        """
        Return the next perform_at by applying the frequency to the current
        one until the date is in the future.
        """
        if not self.frequency:
            raise ValueError(f"{self.name} cannot be rescheduled as it has no frequency")
        try:
            return next_occurrence(self.perform_at, self.frequency)
        except SchedulingInvariantViolation as exc:
            raise SchedulingInvariantViolation(f"{self.name} has a frequency going backward") from exc

    def reschedule(self):
        """Move perform_at to the next occurrence, if the job is recurring."""
        if not self.frequency:
            return
        self.perform_at = self.next_perform_at()

    def mark_failed(self, error: str):
        self.last_error = error
        self.failed_at = clock.now()

    def fail(self, error: str):
        """Save the error and reschedule the job for a new attempt."""
        self.mark_failed(error)
        if self.frequency:
            self.perform_at = self.next_perform_at()
        else:
            self.perform_at = next_retry_at(self.number_attempts)
