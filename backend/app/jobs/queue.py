"""Durable job queue wrapping background work such as expiry sweeps."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .models import JobRecord, JobStatus, JobType

logger = logging.getLogger("membership.jobs")

JobHandler = Callable[[datetime], object]


class JobRepository(Protocol):
    """Persistence operations required by the job queue."""

    def insert(self, job: JobRecord) -> JobRecord:
        ...

    def get(self, job_id: int) -> Optional[JobRecord]:
        ...

    def list_claimable(self, now: datetime, stale_before: datetime) -> Sequence[JobRecord]:
        """PENDING jobs due at ``now`` and RUNNING jobs started before ``stale_before``."""

    def claim(self, job_id: int, now: datetime, stale_before: datetime) -> bool:
        """Move a claimable job to RUNNING; ``False`` if another worker won."""

    def finish(
        self,
        job_id: int,
        status: JobStatus,
        now: datetime,
        error: Optional[str] = None,
    ) -> Optional[JobRecord]:
        ...

    def list_jobs(self, limit: int = 50) -> Sequence[JobRecord]:
        ...


def _claimable(job: JobRecord, now: datetime, stale_before: datetime) -> bool:
    if job.status == JobStatus.PENDING:
        return job.scheduled_at <= now
    if job.status == JobStatus.RUNNING:
        return job.started_at is None or job.started_at < stale_before
    return False


class InMemoryJobRepository:
    """Thread-safe job repository for tests and local development."""

    def __init__(self) -> None:
        self._jobs: Dict[int, JobRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, job: JobRecord) -> JobRecord:
        with self._lock:
            stored = job.model_copy(update={"id": self._next_id})
            self._next_id += 1
            self._jobs[stored.id] = stored
            return stored

    def get(self, job_id: int) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_claimable(self, now: datetime, stale_before: datetime) -> Sequence[JobRecord]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if _claimable(job, now, stale_before)]
        return sorted(jobs, key=lambda job: (job.scheduled_at, job.id))

    def claim(self, job_id: int, now: datetime, stale_before: datetime) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not _claimable(job, now, stale_before):
                return False
            self._jobs[job_id] = job.model_copy(
                update={"status": JobStatus.RUNNING, "started_at": now, "error": None}
            )
            return True

    def finish(
        self,
        job_id: int,
        status: JobStatus,
        now: datetime,
        error: Optional[str] = None,
    ) -> Optional[JobRecord]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            finished = job.model_copy(update={"status": status, "processed_at": now, "error": error})
            self._jobs[job_id] = finished
            return finished

    def list_jobs(self, limit: int = 50) -> Sequence[JobRecord]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda job: job.id, reverse=True)
        return jobs[:limit]


class JobQueue:
    """Enqueue-then-process job runner.

    A crash mid-job leaves the row RUNNING; it is claimed again once it is
    older than ``stale_after``.
    """

    def __init__(
        self,
        repository: JobRepository,
        handlers: Mapping[JobType, JobHandler],
        *,
        clock: Optional[Callable[[], datetime]] = None,
        stale_after: timedelta = timedelta(minutes=30),
    ) -> None:
        self._repository = repository
        self._handlers = dict(handlers)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stale_after = stale_after

    def enqueue(self, job_type: JobType, scheduled_at: Optional[datetime] = None) -> JobRecord:
        now = self._clock()
        job = self._repository.insert(
            JobRecord(job_type=job_type, scheduled_at=scheduled_at or now, created_at=now)
        )
        logger.info("Enqueued job %s type=%s scheduled_at=%s", job.id, job_type.value, job.scheduled_at)
        return job

    def process_due(self, now: Optional[datetime] = None) -> List[JobRecord]:
        """Run every claimable job and return their final records."""

        moment = now or self._clock()
        stale_before = moment - self._stale_after
        processed: List[JobRecord] = []
        for job in self._repository.list_claimable(moment, stale_before):
            if not self._repository.claim(job.id, moment, stale_before):
                logger.info("Job %s was claimed by another worker", job.id)
                continue
            finished = self._run(job, moment)
            if finished is not None:
                processed.append(finished)
        return processed

    def run_expiry_job(self, now: Optional[datetime] = None) -> Optional[JobRecord]:
        """Enqueue an access-expiry job and process everything due."""

        moment = now or self._clock()
        job = self.enqueue(JobType.EXPIRE_ACCESS, scheduled_at=moment)
        for record in self.process_due(moment):
            if record.id == job.id:
                return record
        return self._repository.get(job.id)

    def recent_jobs(self, limit: int = 50) -> Sequence[JobRecord]:
        return self._repository.list_jobs(limit)

    def _run(self, job: JobRecord, now: datetime) -> Optional[JobRecord]:
        handler = self._handlers.get(job.job_type)
        if handler is None:
            logger.warning("No handler registered for job %s type=%s", job.id, job.job_type.value)
            return self._repository.finish(
                job.id, JobStatus.FAILED, now, error=f"No handler for {job.job_type.value}"
            )
        try:
            handler(now)
        except Exception as exc:
            logger.exception("Job %s type=%s failed", job.id, job.job_type.value)
            return self._repository.finish(job.id, JobStatus.FAILED, self._clock(), error=str(exc))
        logger.info("Job %s type=%s completed", job.id, job.job_type.value)
        return self._repository.finish(job.id, JobStatus.COMPLETED, self._clock())


__all__ = ["InMemoryJobRepository", "JobHandler", "JobQueue", "JobRepository"]
