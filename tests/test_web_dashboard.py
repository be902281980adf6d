import pytest

from dummy_jobs import DummyJob
from utils import clock
from web_dashboard import app


@pytest.fixture
def client(storage):
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def jobs(storage, now):
    due = DummyJob()
    due.perform_asap()

    scheduled = DummyJob()
    scheduled.perform_later(clock.from_now(1, "hour"))

    locked = DummyJob()
    locked.perform_asap()
    locked.locked_at = now
    storage.save(locked)

    failed = DummyJob()
    failed.perform_asap()
    failed.fail("oops")
    storage.save(failed)

    exhausted = DummyJob()
    exhausted.perform_asap()
    exhausted.number_attempts = 26
    storage.save(exhausted)

    return {"due": due, "scheduled": scheduled, "locked": locked, "failed": failed, "exhausted": exhausted}


def test_status(client, jobs):
    response = client.get("/api/status")

    assert response.status_code == 200
    assert response.get_json() == {
        "total": 5,
        "due": 1,
        "scheduled": 1,
        "locked": 1,
        "failed": 1,
        "exhausted": 1,
    }


def test_jobs(client, jobs):
    response = client.get("/api/jobs")

    data = response.get_json()
    assert [j["id"] for j in data] == [job.id for job in jobs.values()]
    assert [j["state"] for j in data] == list(jobs)
    assert data[3]["last_error"] == "oops"
    assert data[0]["perform_at"] == "2023-04-20T12:00:00+00:00"


def test_job(client, jobs):
    response = client.get(f"/api/jobs/{jobs['locked'].id}")

    assert response.status_code == 200
    data = response.get_json()
    assert data["name"] == "dummy_jobs.DummyJob"
    assert data["state"] == "locked"
    assert data["locked_at"] == "2023-04-20T12:00:00+00:00"


def test_missing_job(client):
    response = client.get("/api/jobs/42")

    assert response.status_code == 404


def test_home(client, jobs):
    response = client.get("/")

    assert response.status_code == 200
    html = response.get_data(as_text=True)
    assert "jobctl Dashboard" in html
    assert "oops" in html


def test_home_filtered_by_state(client, jobs):
    response = client.get("/?state=failed")

    html = response.get_data(as_text=True)
    assert "(Filtered: failed)" in html
    assert html.count("<td>dummy_jobs.DummyJob</td>") == 1
