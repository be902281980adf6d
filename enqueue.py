import json
from typing import Iterable, Optional

from errors import UnknownJobType
from registry import JobRegistry, registry as default_registry
from storage import JobStorage
from utils import clock, parse_when


def parse_arg(raw: str):
    """Decode a CLI argument as a JSON scalar (42, true, null), else keep the string."""
    try:
        value = json.loads(raw)
    except ValueError:
        return raw
    if value is None or isinstance(value, (str, int, bool)):
        return value
    return raw


def enqueue_job(
    name: str,
    args: Iterable = (),
    perform_at=None,
    queue: Optional[str] = None,
    frequency: Optional[str] = None,
    registry: Optional[JobRegistry] = None,
    storage: Optional[JobStorage] = None,
):
    """Schedule the job registered under `name`, return the stored job."""
    registry = registry or default_registry
    job = registry.create(name)
    if job is None:
        raise UnknownJobType(name)

    if queue:
        job.queue = queue
    if frequency is not None:
        job.frequency = frequency
    if perform_at is None:
        perform_at = clock.now()
    elif isinstance(perform_at, str):
        perform_at = parse_when(perform_at)

    job.perform_later(perform_at, *args, storage=storage)
    return job
