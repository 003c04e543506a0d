"""Models for durable background jobs and expiry sweeps."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class JobType(str, Enum):
    EXPIRE_ACCESS = "EXPIRE_ACCESS"


class JobStatus(str, Enum):
    """Lifecycle of a queued job. COMPLETED and FAILED are final."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobRecord(BaseModel):
    id: Optional[int] = None
    job_type: JobType
    status: JobStatus = JobStatus.PENDING
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class SweepSummary(BaseModel):
    """Counts reported by one expiry sweep."""

    examined: int = 0
    demoted: int = 0
    grants_revoked: int = 0
    failures: int = 0

    model_config = ConfigDict(frozen=True)


__all__ = ["JobRecord", "JobStatus", "JobType", "SweepSummary"]
