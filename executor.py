import logging
import time
import traceback
from typing import Optional

from backoff import next_retry_at
from config import Config
from database import JobRecord
from errors import JobNotFound, SchedulingInvariantViolation, UnknownJobType
from job import Job
from lockable import LockManager
from metrics import record
from models import RunResult, RunStatus
from registry import JobRegistry, registry as default_registry
from storage import JobStorage

logger = logging.getLogger(__name__)


def run_job(
    job_id: int,
    storage: Optional[JobStorage] = None,
    registry: Optional[JobRegistry] = None,
    lock_manager: Optional[LockManager] = None,
) -> RunResult:
    """
    Execute the given job, even if it's not its time yet.

    The job is locked during its execution. On success, a one-shot job is
    deleted and a recurring job is rescheduled. On failure, the error is
    saved and the job is rescheduled for another attempt.
    """
    storage = storage or JobStorage()
    registry = registry or default_registry
    if lock_manager is None:
        lock_manager = LockManager(JobRecord, lock_timeout=int(Config().get("lock_timeout")))

    job = registry.load(job_id, storage=storage)
    if job is None:
        row = storage.get_job(job_id)
        if row is None:
            return RunResult(job_id, RunStatus.NOT_FOUND)
        _postpone_unknown_type(row, storage, lock_manager)
        return RunResult(job_id, RunStatus.NOT_FOUND, name=row.name)

    if not callable(getattr(job, "perform", None)):
        logger.error("%s class does not declare any perform() method.", job.name)
        storage.delete_job(job.id)
        record("complete", job_id=job.id, status=RunStatus.MALFORMED.value)
        return RunResult(job.id, RunStatus.MALFORMED, name=job.name)

    if not lock_manager.acquire(job):
        return RunResult(job.id, RunStatus.LOCKED, name=job.name)

    record("start", job_id=job.id)
    start = time.monotonic()

    job.number_attempts += 1
    storage.save(job)

    try:
        job.perform(*job.args)
    except Exception as e:
        logger.error("job#%s (%s) failed: %s", job.id, job.name, e)
        error = traceback.format_exc()
        _reschedule_and_unlock(job, storage, lock_manager, lambda: job.fail(error), error)
        status = RunStatus.FAILED
    else:
        if job.frequency:
            _reschedule_and_unlock(job, storage, lock_manager, job.reschedule)
        else:
            storage.delete_job(job.id)
        status = RunStatus.DONE

    elapsed = time.monotonic() - start
    record("complete", job_id=job.id, status=status.value, elapsed=round(elapsed, 3))
    return RunResult(job.id, status, name=job.name, elapsed=elapsed)


def _reschedule_and_unlock(job, storage, lock_manager, reschedule, error=""):
    try:
        reschedule()
    except SchedulingInvariantViolation as e:
        logger.error("job#%s (%s) cannot be rescheduled: %s", job.id, job.name, e)
        job.mark_failed(f"{error}\n{e}" if error else str(e))
        raise
    finally:
        try:
            storage.save(job)
        except JobNotFound:
            logger.warning("job#%s (%s) was deleted during its execution", job.id, job.name)
        else:
            lock_manager.release(job)


def _postpone_unknown_type(row, storage, lock_manager):
    """
    Retry later a job whose type isn't registered, so it doesn't hide the
    other due jobs. Like any failing one-shot job, it ends up exhausted.
    """
    job = Job().populate(row)
    if not lock_manager.acquire(job):
        return
    job.number_attempts += 1
    job.mark_failed(str(UnknownJobType(job.name)))
    job.perform_at = next_retry_at(job.number_attempts)
    try:
        storage.save(job)
    except JobNotFound:
        return
    lock_manager.release(job)
