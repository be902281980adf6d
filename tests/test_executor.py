import threading
from datetime import timedelta

import pytest

import dummy_jobs
import metrics
from database import JobRecord
from dummy_jobs import BlockingJob, DummyJob, NoPerformJob, SelfDeletingJob
from errors import SchedulingInvariantViolation
from executor import run_job
from lockable import LockManager
from models import RunStatus
from utils import clock


def test_run(storage, now):
    job = DummyJob()
    job.perform_later(clock.ago(5, "minutes"))

    result = run_job(job.id)

    assert result.ok
    assert result.status is RunStatus.DONE
    assert str(result).startswith(f"job#{job.id} (dummy_jobs.DummyJob): done")
    assert dummy_jobs.calls == [job.id]
    assert not storage.exists(job.id)


def test_run_when_frequency_is_set(storage, now):
    job = DummyJob()
    job.frequency = "+1 hour"
    job.perform_later(clock.ago(5, "minutes"))

    result = run_job(job.id)

    assert result.ok
    record = storage.get_job(job.id)
    assert record.perform_at == now + timedelta(minutes=55)
    assert record.number_attempts == 1
    assert record.locked_at is None
    assert record.failed_at is None


def test_run_when_the_job_does_not_exist(storage):
    result = run_job(42)

    assert result.status is RunStatus.NOT_FOUND
    assert not result.ok
    assert str(result) == "Job 42 does not exist."


def test_run_when_job_is_locked(storage, now):
    job = DummyJob()
    job.perform_later(clock.ago(5, "minutes"))
    LockManager(JobRecord).acquire(job)

    result = run_job(job.id)

    assert result.status is RunStatus.LOCKED
    assert dummy_jobs.calls == []
    record = storage.get_job(job.id)
    assert record.number_attempts == 0
    assert record.locked_at == now


def test_run_when_job_fails(storage, now):
    job = DummyJob()
    # DummyJob.perform raises an exception if should_fail is true
    job.perform_later(clock.ago(5, "minutes"), True)

    result = run_job(job.id)

    assert result.status is RunStatus.FAILED
    assert str(result).startswith(f"job#{job.id} (dummy_jobs.DummyJob): failed")
    record = storage.get_job(job.id)
    assert record.perform_at == now + timedelta(seconds=6)
    assert record.failed_at == now
    assert "oops" in record.last_error
    assert record.number_attempts == 1
    assert record.locked_at is None


def test_run_failure_backoff_uses_the_incremented_attempts(storage, now):
    job = DummyJob()
    job.perform_later(clock.ago(5, "minutes"), True)
    job.number_attempts = 9
    storage.save(job)

    run_job(job.id)

    record = storage.get_job(job.id)
    assert record.number_attempts == 10
    assert record.perform_at == now + timedelta(seconds=10005)


def test_run_failure_of_a_recurring_job_follows_its_frequency(storage, now):
    job = DummyJob()
    job.frequency = "+1 hour"
    job.perform_later(clock.ago(5, "minutes"), True)

    result = run_job(job.id)

    assert result.status is RunStatus.FAILED
    record = storage.get_job(job.id)
    assert record.perform_at == now + timedelta(minutes=55)
    assert record.failed_at == now


def test_run_when_job_has_no_perform_method(storage, now, caplog):
    job = NoPerformJob()
    job.perform_asap()

    result = run_job(job.id)

    assert result.status is RunStatus.MALFORMED
    assert not storage.exists(job.id)
    assert "does not declare any perform() method" in caplog.text


def test_run_when_frequency_goes_backward(storage, now):
    job = DummyJob()
    job.perform_later(clock.ago(5, "minutes"))
    job.frequency = "-1 day"
    storage.save(job)

    with pytest.raises(SchedulingInvariantViolation):
        run_job(job.id)

    assert dummy_jobs.calls == [job.id]
    record = storage.get_job(job.id)
    assert record.failed_at == now
    assert "going backward" in record.last_error
    assert record.locked_at is None


def test_run_failure_with_frequency_going_backward_keeps_both_errors(storage, now):
    job = DummyJob()
    job.perform_later(clock.ago(5, "minutes"), True)
    job.frequency = "-1 day"
    storage.save(job)

    with pytest.raises(SchedulingInvariantViolation):
        run_job(job.id)

    record = storage.get_job(job.id)
    assert "oops" in record.last_error
    assert "going backward" in record.last_error
    assert record.locked_at is None


@pytest.mark.parametrize("should_fail, status", [(True, RunStatus.FAILED), (False, RunStatus.DONE)])
def test_run_when_the_job_is_deleted_during_its_execution(storage, now, should_fail, status):
    job = SelfDeletingJob()
    job.frequency = "+1 hour"
    job.perform_asap(should_fail)

    result = run_job(job.id)

    assert result.status is status
    assert dummy_jobs.calls == [job.id]
    assert not storage.exists(job.id)


def test_run_when_the_job_type_is_not_registered(storage, now):
    job = DummyJob()
    job.perform_later(clock.ago(5, "minutes"))
    job.name = "gone.Job"
    storage.save(job)

    result = run_job(job.id)

    assert result.status is RunStatus.NOT_FOUND
    assert str(result) == f"job#{job.id} (gone.Job): not a registered job type, retried later"
    record = storage.get_job(job.id)
    assert record.number_attempts == 1
    assert record.perform_at == now + timedelta(seconds=6)
    assert record.failed_at == now
    assert record.last_error == "gone.Job is not a registered job type."
    assert record.locked_at is None
    assert storage.find_next_job_id("all") is None


def test_run_records_metrics(storage, now, tmp_path, config_file):
    from config import Config

    path = tmp_path / "metrics.json"
    Config().set("metrics_path", str(path))
    job = DummyJob()
    job.perform_asap()

    run_job(job.id)

    events = metrics.load(str(path))
    assert [e["event"] for e in events] == ["start", "complete"]
    assert events[1]["status"] == "done"
    assert events[1]["job_id"] == job.id


def test_one_shot_job_is_consumed(storage, now):
    job = DummyJob()
    job.perform_asap()

    assert storage.find_next_job_id("all") == job.id
    assert run_job(job.id).ok
    assert storage.find_next_job_id("all") is None


def test_only_one_worker_executes_a_job(storage, now):
    BlockingJob.started.clear()
    BlockingJob.release.clear()
    job = BlockingJob()
    job.perform_asap()
    results = {}

    def first_worker():
        results["first"] = run_job(job.id)

    thread = threading.Thread(target=first_worker)
    thread.start()
    try:
        assert BlockingJob.started.wait(timeout=10)
        results["second"] = run_job(job.id)
    finally:
        BlockingJob.release.set()
        thread.join()

    assert results["first"].status is RunStatus.DONE
    assert results["second"].status is RunStatus.LOCKED
    assert dummy_jobs.calls == [job.id]
    assert not storage.exists(job.id)
