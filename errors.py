"""
Errors raised by the jobs engine.

Outcomes of a single run (job not found, lock held by another worker,
malformed job type, failure of the job itself) are not raised: they are
reported through `models.RunResult`.
"""


class JobError(Exception):
    """Base class of the jobs engine errors."""


class JobNotFound(JobError):
    def __init__(self, job_id):
        super().__init__(f"Job {job_id} does not exist.")
        self.job_id = job_id


class UnknownJobType(JobError):
    def __init__(self, name):
        super().__init__(f"{name} is not a registered job type.")
        self.name = name


class InvalidJobArgument(JobError, ValueError):
    pass


class InvalidFrequency(JobError, ValueError):
    pass


class SchedulingInvariantViolation(JobError):
    """A recurring job frequency does not move time forward."""
