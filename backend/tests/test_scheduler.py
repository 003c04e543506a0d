from datetime import datetime, timezone

import pytest

from backend import scheduler
from backend.app.config import load_membership_config
from backend.app.jobs import JobRecord, JobStatus, JobType


class _FakeQueue:
    def __init__(self, record=None, error=None):
        self.record = record
        self.error = error
        self.calls = []

    def run_expiry_job(self, now=None):
        self.calls.append(now)
        if self.error is not None:
            raise self.error
        return self.record


def test_run_expiry_job_updates_metrics(monkeypatch):
    scheduler._reset_metrics_for_testing()
    run_time = datetime(2024, 8, 1, 0, 0, tzinfo=timezone.utc)
    record = JobRecord(
        id=3,
        job_type=JobType.EXPIRE_ACCESS,
        status=JobStatus.COMPLETED,
        scheduled_at=run_time,
        processed_at=run_time,
    )
    queue = _FakeQueue(record)
    monkeypatch.setattr(scheduler, "get_job_queue", lambda: queue)

    result = scheduler.run_expiry_job(now=run_time)

    assert result == record
    assert queue.calls == [run_time]
    metrics = scheduler.get_expiry_metrics()
    assert metrics["runs"] == 1
    assert metrics["jobs_completed"] == 1
    assert metrics["jobs_failed"] == 0
    assert metrics["last_run_at"] == run_time.isoformat()
    assert metrics["last_success_at"] == run_time.isoformat()
    assert metrics["last_error"] is None


def test_failed_job_is_counted(monkeypatch):
    scheduler._reset_metrics_for_testing()
    run_time = datetime(2024, 8, 2, 0, 0, tzinfo=timezone.utc)
    record = JobRecord(
        id=4,
        job_type=JobType.EXPIRE_ACCESS,
        status=JobStatus.FAILED,
        scheduled_at=run_time,
        error="database unavailable",
    )
    monkeypatch.setattr(scheduler, "get_job_queue", lambda: _FakeQueue(record))

    scheduler.run_expiry_job(now=run_time)

    metrics = scheduler.get_expiry_metrics()
    assert metrics["jobs_failed"] == 1
    assert metrics["last_success_at"] is None
    assert metrics["last_error"] == "database unavailable"


def test_queue_errors_are_recorded_and_raised(monkeypatch):
    scheduler._reset_metrics_for_testing()
    monkeypatch.setattr(scheduler, "get_job_queue", lambda: _FakeQueue(error=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        scheduler.run_expiry_job(now=datetime(2024, 8, 3, tzinfo=timezone.utc))

    metrics = scheduler.get_expiry_metrics()
    assert metrics["jobs_failed"] == 1
    assert metrics["last_error"] == "RuntimeError: boom"


def test_seconds_until_next_daily_run():
    now = datetime(2024, 8, 1, 22, 30, tzinfo=timezone.utc)

    assert scheduler._seconds_until(23, 0, now=now) == 30 * 60
    assert scheduler._seconds_until(0, 0, now=now) == 90 * 60
    assert scheduler._seconds_until(22, 30, now=now) == 24 * 60 * 60


def test_disabled_scheduler_does_not_start():
    config = load_membership_config({"EXPIRY_SCHEDULER_ENABLED": "false"})

    assert scheduler.start_expiry_scheduler(config) is False


def test_scheduler_start_and_shutdown():
    config = load_membership_config({"EXPIRY_SWEEP_HOUR": "4"})
    try:
        assert scheduler.start_expiry_scheduler(config) is True
        assert scheduler.start_expiry_scheduler(config) is True
    finally:
        scheduler.shutdown_expiry_scheduler()
    assert scheduler._worker is None
