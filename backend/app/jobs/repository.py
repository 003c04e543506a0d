"""PostgreSQL persistence for the durable job queue."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional, Sequence

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .models import JobRecord, JobStatus, JobType


def _row_to_job(row: dict) -> JobRecord:
    return JobRecord(
        id=row["id"],
        job_type=JobType(row["job_type"]),
        status=JobStatus(row["status"]),
        scheduled_at=row["scheduled_at"],
        started_at=row.get("started_at"),
        processed_at=row.get("processed_at"),
        error=row.get("error"),
        created_at=row["created_at"],
    )


def _default_conn_factory() -> PgConnection:
    from ...app_context import get_conn

    return get_conn()


class PostgresJobRepository:
    """Stores queued jobs in the ``job_queue`` table."""

    def __init__(self, *, conn_factory: Optional[Callable[[], PgConnection]] = None) -> None:
        self._conn_factory = conn_factory or _default_conn_factory

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        connection = self._conn_factory()
        cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        try:
            yield cursor
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            cursor.close()
            connection.close()

    def insert(self, job: JobRecord) -> JobRecord:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO job_queue (job_type, status, scheduled_at, created_at)
                VALUES (%s, %s, %s, %s)
                RETURNING *
                """,
                (job.job_type.value, job.status.value, job.scheduled_at, job.created_at),
            )
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to enqueue job")
        return _row_to_job(row)

    def get(self, job_id: int) -> Optional[JobRecord]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM job_queue WHERE id = %s", (job_id,))
            row = cur.fetchone()
        return _row_to_job(row) if row else None

    def list_claimable(self, now: datetime, stale_before: datetime) -> Sequence[JobRecord]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT *
                FROM job_queue
                WHERE (status = %s AND scheduled_at <= %s)
                   OR (status = %s AND (started_at IS NULL OR started_at < %s))
                ORDER BY scheduled_at ASC, id ASC
                """,
                (JobStatus.PENDING.value, now, JobStatus.RUNNING.value, stale_before),
            )
            rows = cur.fetchall() or []
        return [_row_to_job(row) for row in rows]

    def claim(self, job_id: int, now: datetime, stale_before: datetime) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE job_queue
                SET status = %s, started_at = %s, error = NULL
                WHERE id = %s
                  AND (
                    (status = %s AND scheduled_at <= %s)
                    OR (status = %s AND (started_at IS NULL OR started_at < %s))
                  )
                """,
                (
                    JobStatus.RUNNING.value,
                    now,
                    job_id,
                    JobStatus.PENDING.value,
                    now,
                    JobStatus.RUNNING.value,
                    stale_before,
                ),
            )
            return cur.rowcount == 1

    def finish(
        self,
        job_id: int,
        status: JobStatus,
        now: datetime,
        error: Optional[str] = None,
    ) -> Optional[JobRecord]:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE job_queue
                SET status = %s, processed_at = %s, error = %s
                WHERE id = %s
                RETURNING *
                """,
                (status.value, now, error, job_id),
            )
            row = cur.fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, limit: int = 50) -> Sequence[JobRecord]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM job_queue ORDER BY id DESC LIMIT %s", (limit,))
            rows = cur.fetchall() or []
        return [_row_to_job(row) for row in rows]


__all__ = ["PostgresJobRepository"]
