"""
Exhausted jobs: one-shot jobs which failed more than `max_attempts` times.

Workers don't pick them anymore, but they are kept in database until an
operator retries or deletes them.
"""
from datetime import timedelta
from typing import List

from sqlalchemy import delete, select

from config import Config
from database import JobRecord, get_session
from errors import JobNotFound
from utils import clock


class DLQManager:
    def __init__(self, max_attempts=None):
        if max_attempts is None:
            max_attempts = Config().get("max_attempts")
        self.max_attempts = int(max_attempts)

    def _exhausted(self):
        return (JobRecord.frequency == '') & (JobRecord.number_attempts > self.max_attempts)

    def list_dlq(self) -> List[JobRecord]:
        stmt = select(JobRecord).where(self._exhausted()).order_by(JobRecord.id)
        with get_session() as session:
            return list(session.scalars(stmt))

    def retry_job(self, job_id) -> JobRecord:
        """Give the job a fresh set of attempts, starting now."""
        with get_session() as session, session.begin():
            record = session.get(JobRecord, job_id)
            if record is None:
                raise JobNotFound(job_id)
            record.number_attempts = 0
            record.last_error = ''
            record.failed_at = None
            record.perform_at = clock.now()
        return record

    def cleanup_old_jobs(self, days_old: int = 7) -> int:
        """Delete the exhausted jobs not updated for `days_old` days."""
        cutoff = clock.now() - timedelta(days=days_old)
        stmt = delete(JobRecord).where(self._exhausted()).where(JobRecord.updated_at < cutoff)
        with get_session() as session, session.begin():
            return session.execute(stmt).rowcount
