from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

from errors import InvalidJobArgument

# Values a job can receive: they are stored as a JSON array
JobArg = Union[str, int, bool, None]


def validate_args(args: Sequence) -> List[JobArg]:
    values = list(args)
    for value in values:
        if value is not None and not isinstance(value, (str, int, bool)):
            raise InvalidJobArgument(
                f"{value!r} ({type(value).__name__}) cannot be passed to a job, "
                "only str, int, bool and None are accepted"
            )
    return values


class RunStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    LOCKED = "locked"
    MALFORMED = "malformed"


class WorkerState(str, Enum):
    STARTING = "starting"
    POLLING = "polling"
    EXECUTING = "executing"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class RunResult:
    job_id: int
    status: RunStatus
    name: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.DONE

    def __str__(self):
        if self.status is RunStatus.NOT_FOUND and self.name is None:
            return f"Job {self.job_id} does not exist."
        prefix = f"job#{self.job_id} ({self.name})"
        if self.status is RunStatus.NOT_FOUND:
            return f"{prefix}: not a registered job type, retried later"
        if self.status is RunStatus.LOCKED:
            return f"{prefix}: locked by another worker"
        if self.status is RunStatus.MALFORMED:
            return f"{prefix}: no perform() method, job removed"
        return f"{prefix}: {self.status.value} (in {self.elapsed:.3f} seconds)"
