"""Daily scheduler driving the access-expiry job."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from backend.app.config import MembershipConfig
from backend.app.jobs import JobRecord, JobStatus
from backend.app.services.membership import get_job_queue, get_membership_config

logger = logging.getLogger(__name__)

_DAY_SECONDS = 24 * 60 * 60

_scheduler_lock = Lock()
_worker: Optional["_ExpiryWorker"] = None

_EXPIRY_METRICS: Dict[str, object] = {
    "runs": 0,
    "jobs_completed": 0,
    "jobs_failed": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _EXPIRY_METRICS["runs"] = int(_EXPIRY_METRICS["runs"]) + 1
        _EXPIRY_METRICS["last_run_at"] = started_at


def _record_run_result(finished_at: datetime, job: Optional[JobRecord]) -> None:
    with _metrics_lock:
        if job is not None and job.status == JobStatus.COMPLETED:
            _EXPIRY_METRICS["jobs_completed"] = int(_EXPIRY_METRICS["jobs_completed"]) + 1
            _EXPIRY_METRICS["last_success_at"] = finished_at
            _EXPIRY_METRICS["last_error"] = None
        else:
            _EXPIRY_METRICS["jobs_failed"] = int(_EXPIRY_METRICS["jobs_failed"]) + 1
            _EXPIRY_METRICS["last_error"] = job.error if job is not None else "Job was not processed"


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _EXPIRY_METRICS["jobs_failed"] = int(_EXPIRY_METRICS["jobs_failed"]) + 1
        _EXPIRY_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_expiry_job(*, now: Optional[datetime] = None) -> Optional[JobRecord]:
    """Enqueue and process an access-expiry job, updating the run metrics."""

    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        job = get_job_queue().run_expiry_job(current_time)
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Access expiry job could not be queued")
        raise

    _record_run_result(current_time, job)
    logger.info(
        "Access expiry job finished",
        extra={
            "job_id": job.id if job else None,
            "status": job.status.value if job else None,
        },
    )
    return job


class _ExpiryWorker(Thread):
    def __init__(self, *, initial_delay: float, interval: float = _DAY_SECONDS):
        super().__init__(daemon=True, name="expiry-scheduler")
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                run_expiry_job()
            except Exception:
                # Logged and counted in run_expiry_job; the next day retries.
                pass
            if self._stop_event.wait(self._interval):
                break


def _seconds_until(hour: int, minute: int = 0, *, now: Optional[datetime] = None) -> float:
    current = now or datetime.now(timezone.utc)
    target = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= current:
        target += timedelta(days=1)
    return max((target - current).total_seconds(), 0.0)


def start_expiry_scheduler(config: Optional[MembershipConfig] = None) -> bool:
    """Start the daily worker unless disabled; returns whether a worker is running."""

    global _worker
    settings = config or get_membership_config()
    if not settings.scheduler_enabled:
        logger.info("Access expiry scheduler disabled")
        return False
    with _scheduler_lock:
        if _worker is not None:
            return True
        delay = _seconds_until(settings.sweep_hour, settings.sweep_minute)
        _worker = _ExpiryWorker(initial_delay=delay)
        _worker.start()
        logger.info(
            "Access expiry scheduler started",
            extra={
                "initial_delay_seconds": round(delay, 2),
                "hour": settings.sweep_hour,
                "minute": settings.sweep_minute,
            },
        )
        return True


def shutdown_expiry_scheduler() -> None:
    global _worker
    with _scheduler_lock:
        worker, _worker = _worker, None
        if worker is None:
            return
        worker.stop()
        worker.join(timeout=1.0)
        logger.info("Access expiry scheduler stopped")


def get_expiry_metrics() -> Dict[str, object]:
    with _metrics_lock:
        snapshot = dict(_EXPIRY_METRICS)
    for key in ("last_run_at", "last_success_at"):
        value = snapshot.get(key)
        snapshot[key] = value.isoformat() if value else None
    return snapshot


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _EXPIRY_METRICS.update(
            {
                "runs": 0,
                "jobs_completed": 0,
                "jobs_failed": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_expiry_metrics",
    "run_expiry_job",
    "shutdown_expiry_scheduler",
    "start_expiry_scheduler",
]
