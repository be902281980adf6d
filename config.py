"""
Simple JSON-backed configuration.
"""
import json
import os

DEFAULTS = {
    "database_url": "sqlite:///jobs.db",
    "lock_timeout": 3600,  # seconds before a lock is considered stale
    "max_attempts": 25,
    "sleep_duration": 3,  # seconds between two polls of an idle worker
    "timezone": "UTC",
    "job_timeout": 60,  # seconds, used by the command job
    "metrics_path": "",
    "log_level": "INFO",
    "job_modules": [],
}

CFG_ENV = "JOBCTL_CONFIG"


def config_path():
    return os.environ.get(CFG_ENV) or os.path.join(os.getcwd(), "jobctl_config.json")


class Config:
    def __init__(self, path=None):
        self.path = path or config_path()
        self._load()

    def _load(self):
        if os.path.exists(self.path):
            with open(self.path, "r") as f:
                self.data = json.load(f)
        else:
            self.data = {}

    def _write(self, d):
        with open(self.path, "w") as f:
            json.dump(d, f, indent=2)

    def get(self, key, default=None):
        return self.data.get(key, DEFAULTS.get(key, default))

    def set(self, key, val):
        self.data[key] = val
        self._write(self.data)

    def all(self):
        merged = dict(DEFAULTS)
        merged.update(self.data)
        return merged
