"""
Registry of the job types, used to rebuild a job from its database row.

The `name` column of a job holds the key it was registered with. Loading a
job whose name isn't registered (e.g. the class has been deleted since the
job was scheduled) returns None, as if the job didn't exist.
"""
import logging
from typing import Callable, Dict, List, Optional

from job import Job, job_name
from storage import JobStorage

logger = logging.getLogger(__name__)


class JobRegistry:
    def __init__(self):
        self._factories: Dict[str, Callable[[], object]] = {}

    def register(self, factory=None, *, name: Optional[str] = None):
        """
        Register a job class (or a function returning a job) under `name`.

        Can be used as `@register` or `@register(name="fetch")`. Classes
        default to "<module>.<ClassName>".
        """
        def decorator(factory):
            key = name
            if isinstance(factory, type) and issubclass(factory, Job):
                key = key or job_name(factory)
                factory.job_name = key
            if not key:
                raise ValueError(f"{factory!r} must be registered with an explicit name")
            if key in self:
                logger.warning("%s job type is registered again, replacing %r", key, self._factories[key])
            self._factories[key] = factory
            return factory

        if factory is None:
            return decorator
        return decorator(factory)

    def names(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, name) -> bool:
        return name in self._factories

    def create(self, name: str) -> Optional[Job]:
        """Instantiate the job type registered under `name`."""
        factory = self._factories.get(name)
        if factory is None:
            return None
        job = factory()
        if not isinstance(job, Job):
            return None
        job.name = name
        return job

    def load(self, job_id: int, storage: Optional[JobStorage] = None) -> Optional[Job]:
        """Find a job and return it as an instance of its registered type."""
        storage = storage or JobStorage()
        record = storage.get_job(job_id)
        if record is None:
            return None

        job = self.create(record.name)
        if job is None:
            logger.warning("job#%s: %r is not a registered job type", job_id, record.name)
            return None
        return job.populate(record)


registry = JobRegistry()
register = registry.register
