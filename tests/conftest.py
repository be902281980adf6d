from datetime import datetime, timezone

import pytest

import database
import dummy_jobs
from storage import JobStorage
from utils import clock

NOW = datetime(2023, 4, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "jobctl_config.json"
    monkeypatch.setenv("JOBCTL_CONFIG", str(path))
    return path


@pytest.fixture(autouse=True)
def reset_state():
    dummy_jobs.calls.clear()
    yield
    clock.unfreeze()
    clock.set_timezone("UTC")


@pytest.fixture
def db(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'jobs.db'}"
    monkeypatch.setenv("JOBCTL_DATABASE_URL", url)
    database.configure(url)
    database.initialize_db()
    yield url
    database.close_connections()


@pytest.fixture
def storage(db):
    return JobStorage()


@pytest.fixture
def now():
    clock.freeze(NOW)
    return NOW
