from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, or_, select

from database import JobRecord, get_session
from errors import JobNotFound
from utils import clock

# Columns copied between a Job instance and its JobRecord row
FIELDS = (
    "name",
    "args",
    "perform_at",
    "frequency",
    "queue",
    "locked_at",
    "number_attempts",
    "last_error",
    "failed_at",
)


def normalize_queue(queue: str) -> str:
    """Ignore the numbers at the end of a queue name (fetchers1 -> fetchers)."""
    return queue.rstrip("0123456789")


class JobStorage:
    def add_job(self, job) -> int:
        """Insert the job and set its id and timestamps."""
        now = clock.now()
        record = JobRecord(created_at=now, updated_at=now)
        for field in FIELDS:
            setattr(record, field, getattr(job, field))
        with get_session() as session, session.begin():
            session.add(record)
            session.flush()
            job.id = record.id
        job.created_at = now
        job.updated_at = now
        return job.id

    def save(self, job):
        """Write all the fields of an already stored job."""
        now = clock.now()
        with get_session() as session, session.begin():
            record = session.get(JobRecord, job.id)
            if record is None:
                raise JobNotFound(job.id)
            for field in FIELDS:
                setattr(record, field, getattr(job, field))
            record.updated_at = now
        job.updated_at = now

    def get_job(self, job_id) -> Optional[JobRecord]:
        with get_session() as session:
            return session.get(JobRecord, job_id)

    def require_job(self, job_id) -> JobRecord:
        record = self.get_job(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    def delete_job(self, job_id) -> bool:
        with get_session() as session, session.begin():
            return session.execute(delete(JobRecord).where(JobRecord.id == job_id)).rowcount == 1

    def exists(self, job_id) -> bool:
        return self.get_job(job_id) is not None

    def list_jobs(self, queue: Optional[str] = None) -> List[JobRecord]:
        stmt = select(JobRecord).order_by(JobRecord.id)
        if queue and queue != "all":
            stmt = stmt.where(JobRecord.queue == queue)
        with get_session() as session:
            return list(session.scalars(stmt))

    def find_next_job_id(
        self,
        queue: str = "all",
        now: Optional[datetime] = None,
        lock_timeout: int = 3600,
        max_attempts: int = 25,
    ) -> Optional[int]:
        """
        Return the id of the next job to execute from the given queue, or
        None if no job is due.

        Jobs are returned by ascending perform_at. Locked jobs are skipped
        until their lock expires. One-shot jobs are abandoned once they
        have been attempted more than `max_attempts` times.

        If queue is "all", the job can come from any queue.
        """
        now = now or clock.now()
        lock_threshold = now - timedelta(seconds=lock_timeout)
        stmt = (
            select(JobRecord.id)
            .where(or_(JobRecord.locked_at.is_(None), JobRecord.locked_at <= lock_threshold))
            .where(JobRecord.perform_at <= now)
            .where(or_(JobRecord.number_attempts <= max_attempts, JobRecord.frequency != ''))
            .order_by(JobRecord.perform_at.asc())
            .limit(1)
        )
        if queue != "all":
            stmt = stmt.where(JobRecord.queue == queue)

        with get_session() as session:
            return session.scalars(stmt).first()

    def unfail(self, job_id) -> Optional[str]:
        """Discard the error of a job and return it (None if it wasn't failing)."""
        with get_session() as session, session.begin():
            record = session.get(JobRecord, job_id)
            if record is None:
                raise JobNotFound(job_id)
            if record.failed_at is None:
                return None
            error = record.last_error
            record.last_error = ''
            record.failed_at = None
        return error
