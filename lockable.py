"""
Lock records in database through their `locked_at` column.

    manager = LockManager(JobRecord)
    if manager.acquire(job):
        ...  # nobody else can acquire the job until it's released
        manager.release(job)

A lock which is older than `lock_timeout` seconds (default is 1 hour) is
considered as expired and can be acquired again. It allows to recover the
records locked by a worker which crashed.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, update

from database import get_session
from utils import clock

DEFAULT_LOCK_TIMEOUT = 3600


class LockManager:
    def __init__(self, model, lock_timeout: int = DEFAULT_LOCK_TIMEOUT):
        self.model = model
        self.lock_timeout = lock_timeout

    def threshold(self, now: Optional[datetime] = None) -> datetime:
        now = now or clock.now()
        return now - timedelta(seconds=self.lock_timeout)

    def acquire(self, record, now: Optional[datetime] = None) -> bool:
        """Lock the record and return whether the operation was successful."""
        now = now or clock.now()
        stmt = (
            update(self.model)
            .where(self.model.id == record.id)
            .where(or_(self.model.locked_at.is_(None), self.model.locked_at <= self.threshold(now)))
            .values(locked_at=now)
            .execution_options(synchronize_session=False)
        )
        with get_session() as session, session.begin():
            acquired = session.execute(stmt).rowcount == 1

        if acquired:
            record.locked_at = now
        return acquired

    def release(self, record) -> bool:
        """Unlock the record. Return false only if the record no longer exists."""
        stmt = (
            update(self.model)
            .where(self.model.id == record.id)
            .values(locked_at=None)
            .execution_options(synchronize_session=False)
        )
        with get_session() as session, session.begin():
            released = session.execute(stmt).rowcount == 1

        if released:
            record.locked_at = None
        return released

    def is_locked(self, record, now: Optional[datetime] = None) -> bool:
        if record.locked_at is None:
            return False
        return record.locked_at > self.threshold(now)
