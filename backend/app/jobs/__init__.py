"""Background jobs: the durable queue and the access-expiry sweeper."""

from .models import JobRecord, JobStatus, JobType, SweepSummary
from .queue import InMemoryJobRepository, JobHandler, JobQueue, JobRepository
from .sweeper import ExpirySweeper

__all__ = [
    "ExpirySweeper",
    "InMemoryJobRepository",
    "JobHandler",
    "JobQueue",
    "JobRecord",
    "JobRepository",
    "JobStatus",
    "JobType",
    "SweepSummary",
]
