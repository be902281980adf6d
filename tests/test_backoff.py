from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from backoff import check_frequency, next_occurrence, next_retry_at, retry_delay
from dummy_jobs import DummyJob
from errors import SchedulingInvariantViolation
from utils import clock


@pytest.mark.parametrize("attempts, seconds", [(0, 5), (1, 6), (2, 21), (3, 86), (4, 261), (10, 10005)])
def test_retry_delay(attempts, seconds):
    assert retry_delay(attempts) == timedelta(seconds=seconds)


def test_next_retry_at(now):
    assert next_retry_at(1) == now + timedelta(seconds=6)


def test_next_occurrence_is_the_first_occurrence_in_the_future(now):
    start = now - timedelta(hours=5)
    assert next_occurrence(start, "+1 hour") == start + timedelta(hours=6)


def test_next_occurrence_of_a_date_in_the_future(now):
    start = now - timedelta(minutes=5)
    assert next_occurrence(start, "+1 hour") == now + timedelta(minutes=55)


def test_next_occurrence_is_strictly_after_now(now):
    assert next_occurrence(now, "+42 seconds") == now + timedelta(seconds=42)


@pytest.mark.parametrize("frequency", ["-1 day", "+0 hours", "+1 day -2 days"])
def test_next_occurrence_fails_if_frequency_does_not_move_forward(now, frequency):
    with pytest.raises(SchedulingInvariantViolation):
        next_occurrence(now - timedelta(hours=5), frequency)


def test_check_frequency(now):
    check_frequency("+1 hour")
    with pytest.raises(SchedulingInvariantViolation):
        check_frequency("-1 hour")


def test_reschedule_takes_care_of_dst(storage):
    try:
        clock.set_timezone("Europe/Paris")
    except ZoneInfoNotFoundError:
        pytest.skip("the timezone database is not available")
    # In France, the offset was +01 on 25th March 2023 and +02 on 26th March
    start = datetime(2023, 3, 25, 4, 0, tzinfo=ZoneInfo("Europe/Paris"))
    clock.freeze(start)

    job = DummyJob()
    job.frequency = "+1 day"
    job_id = job.perform_later(start)
    # reloaded from the database, the datetime is in UTC
    job.populate(storage.get_job(job_id))

    job.reschedule()

    assert job.perform_at.isoformat() == "2023-03-26T04:00:00+02:00"


def new_york():
    try:
        clock.set_timezone("America/New_York")
    except ZoneInfoNotFoundError:
        pytest.skip("the timezone database is not available")


# In New York, 01:00-02:00 happens twice on 5th November 2023 (EDT, then EST)
def test_next_occurrence_during_dst_fall_back():
    new_york()
    start = datetime(2023, 11, 5, 5, 30, tzinfo=timezone.utc)
    clock.freeze(start)

    result = next_occurrence(start, "+1 hour")

    assert result == datetime(2023, 11, 5, 6, 30, tzinfo=timezone.utc)
    assert result.isoformat() == "2023-11-05T01:30:00-05:00"


def test_next_occurrence_is_after_now_during_dst_fall_back():
    new_york()
    clock.freeze(datetime(2023, 11, 5, 6, 15, tzinfo=timezone.utc))
    start = datetime(2023, 11, 5, 5, 45, tzinfo=timezone.utc)

    result = next_occurrence(start, "+1 day")

    assert result == datetime(2023, 11, 6, 6, 45, tzinfo=timezone.utc)
    assert result > clock.now()


def test_check_frequency_during_dst_fall_back():
    new_york()
    clock.freeze(datetime(2023, 11, 5, 5, 30, tzinfo=timezone.utc))

    check_frequency("+1 hour")
    check_frequency("+30 minutes")


class TestJobFail:
    def test_fail_sets_last_error_and_reschedules_the_job(self, now):
        job = DummyJob()
        job.perform_at = now

        job.fail("It's failing!")

        assert job.last_error == "It's failing!"
        assert job.failed_at == now
        assert job.perform_at == now + timedelta(seconds=5)

    def test_fail_reschedules_exponentially_on_the_number_of_attempts(self, now):
        job = DummyJob()
        job.perform_at = now
        job.number_attempts = 10

        job.fail("It's failing!")

        assert job.perform_at == now + timedelta(seconds=10005)

    def test_fail_reschedules_using_frequency_if_set(self, now):
        job = DummyJob()
        job.perform_at = now
        job.number_attempts = 10
        job.frequency = "+42 seconds"

        job.fail("It's failing!")

        assert job.perform_at == now + timedelta(seconds=42)

    def test_reschedule_does_nothing_without_frequency(self, now):
        job = DummyJob()
        job.perform_at = now - timedelta(hours=5)

        job.reschedule()

        assert job.perform_at == now - timedelta(hours=5)

    def test_reschedule_fails_if_frequency_goes_backward(self, now):
        job = DummyJob()
        job.frequency = "-1 hour"
        job.perform_at = now - timedelta(hours=5)

        with pytest.raises(SchedulingInvariantViolation, match="dummy_jobs.DummyJob has a frequency going backward"):
            job.reschedule()
