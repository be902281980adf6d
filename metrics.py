import json
import os

from config import Config
from utils import now_iso


def record(event_type, job_id=None, status=None, elapsed=None, path=None):
    """Append an event to the metrics file, if one is configured."""
    path = path if path is not None else Config().get("metrics_path")
    if not path:
        return

    data = {}
    if os.path.exists(path):
        with open(path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError:
                data = {}
    data.setdefault("events", []).append({
        "timestamp": now_iso(),
        "event": event_type,
        "job_id": job_id,
        "status": status,
        "elapsed": elapsed,
    })
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def load(path):
    if not os.path.exists(path):
        return []
    with open(path, "r") as f:
        return json.load(f).get("events", [])
