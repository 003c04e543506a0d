"""PostgreSQL implementation of the membership store."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..plans.models import PlanFile, PlanMeta, PlanName
from .exceptions import ConflictError
from .models import (
    AdminAction,
    AdminLogEntry,
    ApprovalStatus,
    Grant,
    Notification,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    Submission,
    SubmissionStatus,
    User,
)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_USER_COLUMNS = {
    "email",
    "password_hash",
    "name",
    "phone",
    "account_number",
    "user_number",
    "payment_method",
    "payment_proof_url",
    "payment_status",
    "approval_status",
    "access_expires_at",
    "is_deleted",
    "deleted_at",
    "hashed_refresh_token",
    "reset_token_hash",
    "reset_token_expires_at",
}

_PLAN_COLUMNS = {
    "name",
    "label",
    "description",
    "price",
    "duration_days",
    "features",
    "is_active",
}


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return psycopg2.extras.Json(value)
    return value


def _row_to_user(row: dict) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        name=row.get("name"),
        phone=row.get("phone"),
        account_number=row.get("account_number"),
        user_number=row.get("user_number"),
        payment_method=PaymentMethod(row["payment_method"]) if row.get("payment_method") else None,
        payment_proof_url=row.get("payment_proof_url"),
        payment_status=PaymentStatus(row["payment_status"]),
        approval_status=ApprovalStatus(row["approval_status"]),
        access_expires_at=row.get("access_expires_at"),
        is_deleted=bool(row.get("is_deleted")),
        deleted_at=row.get("deleted_at"),
        hashed_refresh_token=row.get("hashed_refresh_token"),
        reset_token_hash=row.get("reset_token_hash"),
        reset_token_expires_at=row.get("reset_token_expires_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _plan_file(row: dict, prefix: str) -> Optional[PlanFile]:
    path = row.get(f"{prefix}_path")
    if not path:
        return None
    return PlanFile(
        path=path,
        original_name=row.get(f"{prefix}_name"),
        updated_at=row.get(f"{prefix}_updated_at") or row["updated_at"],
    )


def _row_to_plan(row: dict) -> PlanMeta:
    return PlanMeta(
        name=PlanName(row["name"]),
        label=row["label"],
        description=row.get("description"),
        price=int(row["price"]),
        duration_days=int(row["duration_days"]),
        features=row.get("features") or {},
        is_active=bool(row["is_active"]),
        file_a=_plan_file(row, "file_a"),
        file_b=_plan_file(row, "file_b"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_submission(row: dict) -> Submission:
    return Submission(
        id=row["id"],
        user_id=row["user_id"],
        plan=PlanName(row["plan"]),
        payment_method=PaymentMethod(row["payment_method"]),
        file_path=row.get("file_path"),
        file_original_name=row.get("file_original_name"),
        status=SubmissionStatus(row["status"]),
        admin_note=row.get("admin_note"),
        reviewed_by_id=row.get("reviewed_by_id"),
        reviewed_at=row.get("reviewed_at"),
        created_at=row["created_at"],
    )


def _row_to_grant(row: dict) -> Grant:
    return Grant(
        id=row["id"],
        user_id=row["user_id"],
        submission_id=row.get("submission_id"),
        plan=PlanName(row["plan"]),
        label=row["label"],
        features_snapshot=row.get("features_snapshot") or {},
        price_snapshot=int(row["price_snapshot"]),
        duration_days=int(row["duration_days"]),
        approved_at=row["approved_at"],
        expires_at=row["expires_at"],
        approved_by_id=row.get("approved_by_id"),
        revoked_at=row.get("revoked_at"),
    )


def _row_to_notification(row: dict) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        type=NotificationType(row["type"]),
        message=row["message"],
        plan=PlanName(row["plan"]) if row.get("plan") else None,
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
    )


def _row_to_admin_log(row: dict) -> AdminLogEntry:
    return AdminLogEntry(
        id=row["id"],
        admin_id=row["admin_id"],
        action=AdminAction(row["action"]),
        target_user_id=row.get("target_user_id"),
        submission_id=row.get("submission_id"),
        note=row.get("note"),
        created_at=row["created_at"],
    )


def _plan_assignments(changes: Mapping[str, object]) -> List[Tuple[str, Any]]:
    assignments: List[Tuple[str, Any]] = []
    for key, value in changes.items():
        if key in {"file_a", "file_b"}:
            plan_file = value if isinstance(value, PlanFile) else None
            assignments.extend(
                [
                    (f"{key}_path", plan_file.path if plan_file else None),
                    (f"{key}_name", plan_file.original_name if plan_file else None),
                    (f"{key}_updated_at", plan_file.updated_at if plan_file else None),
                ]
            )
        elif key in _PLAN_COLUMNS:
            assignments.append((key, _db_value(value)))
        else:
            raise KeyError(f"Unsupported plan field: {key}")
    return assignments


class PostgresMembershipTransaction:
    """Membership operations bound to one open cursor."""

    def __init__(self, cursor: PgCursor) -> None:
        self._cursor = cursor

    def _fetchone(self, query: str, params: Any = None) -> Optional[dict]:
        self._cursor.execute(query, params)
        return self._cursor.fetchone()

    def _fetchall(self, query: str, params: Any = None) -> List[dict]:
        self._cursor.execute(query, params)
        return self._cursor.fetchall() or []

    # users
    def get_user(self, user_id: int, *, for_update: bool = False) -> Optional[User]:
        query = "SELECT * FROM users WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        row = self._fetchone(query, (user_id,))
        return _row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._fetchone(
            "SELECT * FROM users WHERE LOWER(email) = LOWER(%s) LIMIT 1",
            (email.strip(),),
        )
        return _row_to_user(row) if row else None

    def max_user_number(self) -> Optional[int]:
        row = self._fetchone("SELECT MAX(user_number) AS max_number FROM users")
        return row["max_number"] if row else None

    def insert_user(self, user: User) -> User:
        try:
            row = self._fetchone(
                """
                INSERT INTO users (
                    email, password_hash, name, phone, account_number, user_number,
                    payment_method, payment_proof_url, payment_status, approval_status,
                    access_expires_at, is_deleted, deleted_at, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    user.email,
                    user.password_hash,
                    user.name,
                    user.phone,
                    user.account_number,
                    user.user_number,
                    _db_value(user.payment_method),
                    user.payment_proof_url,
                    user.payment_status.value,
                    user.approval_status.value,
                    user.access_expires_at,
                    user.is_deleted,
                    user.deleted_at,
                    user.created_at,
                    user.updated_at,
                ),
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("Email or user number already registered") from exc
        if not row:
            raise RuntimeError("Failed to persist user")
        return _row_to_user(row)

    def update_user(self, user_id: int, changes: Mapping[str, object]) -> Optional[User]:
        unknown = set(changes) - _USER_COLUMNS
        if unknown:
            raise KeyError(f"Unsupported user fields: {sorted(unknown)}")
        if not changes:
            return self.get_user(user_id)
        columns = list(changes)
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = [_db_value(changes[column]) for column in columns] + [user_id]
        try:
            row = self._fetchone(
                f"UPDATE users SET {assignments}, updated_at = NOW() WHERE id = %s RETURNING *",
                params,
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("Email already registered") from exc
        return _row_to_user(row) if row else None

    def list_users(self) -> Sequence[User]:
        rows = self._fetchall("SELECT * FROM users ORDER BY created_at DESC, id DESC")
        return [_row_to_user(row) for row in rows]

    def list_lapsed_users(self, now: datetime) -> Sequence[User]:
        rows = self._fetchall(
            """
            SELECT *
            FROM users
            WHERE is_deleted = FALSE
              AND approval_status = %s
              AND access_expires_at < %s
            ORDER BY id
            """,
            (ApprovalStatus.APPROVED.value, now),
        )
        return [_row_to_user(row) for row in rows]

    def demote_lapsed_user(self, user_id: int, now: datetime) -> bool:
        self._cursor.execute(
            """
            UPDATE users
            SET approval_status = %s, payment_status = %s, updated_at = NOW()
            WHERE id = %s AND approval_status = %s AND access_expires_at < %s
            """,
            (
                ApprovalStatus.NONE.value,
                PaymentStatus.NONE.value,
                user_id,
                ApprovalStatus.APPROVED.value,
                now,
            ),
        )
        return self._cursor.rowcount == 1

    def list_reset_candidates(self, now: datetime) -> Sequence[User]:
        rows = self._fetchall(
            """
            SELECT * FROM users
            WHERE reset_token_hash IS NOT NULL
              AND reset_token_expires_at >= %s
              AND is_deleted = FALSE
            """,
            (now,),
        )
        return [_row_to_user(row) for row in rows]

    # plans
    def get_plan(self, name: PlanName) -> Optional[PlanMeta]:
        row = self._fetchone("SELECT * FROM membership_plans WHERE name = %s", (name.value,))
        return _row_to_plan(row) if row else None

    def list_plans(self, *, active_only: bool = False) -> Sequence[PlanMeta]:
        query = "SELECT * FROM membership_plans"
        if active_only:
            query += " WHERE is_active = TRUE"
        query += " ORDER BY price ASC, name ASC"
        return [_row_to_plan(row) for row in self._fetchall(query)]

    def insert_plan(self, plan: PlanMeta) -> PlanMeta:
        try:
            row = self._fetchone(
                """
                INSERT INTO membership_plans (
                    name, label, description, price, duration_days, features, is_active,
                    created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    plan.name.value,
                    plan.label,
                    plan.description,
                    plan.price,
                    plan.duration_days,
                    psycopg2.extras.Json(plan.features),
                    plan.is_active,
                    plan.created_at,
                    plan.updated_at,
                ),
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError(f"Plan {plan.name.value} already exists") from exc
        if not row:
            raise RuntimeError("Failed to persist plan")
        return _row_to_plan(row)

    def update_plan(self, name: PlanName, changes: Mapping[str, object]) -> Optional[PlanMeta]:
        assignments = _plan_assignments(changes)
        if not assignments:
            return self.get_plan(name)
        clause = ", ".join(f"{column} = %s" for column, _ in assignments)
        params = [value for _, value in assignments] + [name.value]
        try:
            row = self._fetchone(
                f"UPDATE membership_plans SET {clause}, updated_at = NOW() WHERE name = %s RETURNING *",
                params,
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("Plan name already exists") from exc
        return _row_to_plan(row) if row else None

    def delete_plan(self, name: PlanName) -> bool:
        self._cursor.execute("DELETE FROM membership_plans WHERE name = %s", (name.value,))
        return self._cursor.rowcount > 0

    # submissions
    def get_submission(self, submission_id: int) -> Optional[Submission]:
        row = self._fetchone("SELECT * FROM payment_submissions WHERE id = %s", (submission_id,))
        return _row_to_submission(row) if row else None

    def find_pending_submission(self, user_id: int) -> Optional[Submission]:
        row = self._fetchone(
            "SELECT * FROM payment_submissions WHERE user_id = %s AND status = %s LIMIT 1",
            (user_id, SubmissionStatus.PENDING.value),
        )
        return _row_to_submission(row) if row else None

    def insert_submission(self, submission: Submission) -> Submission:
        try:
            row = self._fetchone(
                """
                INSERT INTO payment_submissions (
                    user_id, plan, payment_method, file_path, file_original_name,
                    status, admin_note, reviewed_by_id, reviewed_at, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    submission.user_id,
                    submission.plan.value,
                    submission.payment_method.value,
                    submission.file_path,
                    submission.file_original_name,
                    submission.status.value,
                    submission.admin_note,
                    submission.reviewed_by_id,
                    submission.reviewed_at,
                    submission.created_at,
                ),
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("A payment submission is already under review") from exc
        if not row:
            raise RuntimeError("Failed to persist submission")
        return _row_to_submission(row)

    def transition_submission(
        self,
        submission_id: int,
        *,
        expected: SubmissionStatus,
        target: SubmissionStatus,
        reviewed_by_id: Optional[int],
        reviewed_at: datetime,
        admin_note: Optional[str] = None,
    ) -> bool:
        self._cursor.execute(
            """
            UPDATE payment_submissions
            SET status = %s, reviewed_by_id = %s, reviewed_at = %s, admin_note = %s
            WHERE id = %s AND status = %s
            """,
            (target.value, reviewed_by_id, reviewed_at, admin_note, submission_id, expected.value),
        )
        return self._cursor.rowcount == 1

    def latest_submission(self, user_id: int) -> Optional[Submission]:
        row = self._fetchone(
            """
            SELECT *
            FROM payment_submissions
            WHERE user_id = %s
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (user_id,),
        )
        return _row_to_submission(row) if row else None

    def list_submissions(
        self,
        *,
        status: Optional[SubmissionStatus] = None,
        limit: Optional[int] = None,
    ) -> Sequence[Submission]:
        query = "SELECT * FROM payment_submissions"
        params: List[Any] = []
        if status is not None:
            query += " WHERE status = %s"
            params.append(status.value)
        query += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        return [_row_to_submission(row) for row in self._fetchall(query, params)]

    # grants
    def insert_grant(self, grant: Grant) -> Grant:
        row = self._fetchone(
            """
            INSERT INTO plan_grants (
                user_id, submission_id, plan, label, features_snapshot, price_snapshot,
                duration_days, approved_at, expires_at, approved_by_id, revoked_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                grant.user_id,
                grant.submission_id,
                grant.plan.value,
                grant.label,
                psycopg2.extras.Json(grant.features_snapshot),
                grant.price_snapshot,
                grant.duration_days,
                grant.approved_at,
                grant.expires_at,
                grant.approved_by_id,
                grant.revoked_at,
            ),
        )
        if not row:
            raise RuntimeError("Failed to persist grant")
        return _row_to_grant(row)

    def active_grant(self, user_id: int, now: datetime) -> Optional[Grant]:
        row = self._fetchone(
            """
            SELECT *
            FROM plan_grants
            WHERE user_id = %s AND revoked_at IS NULL AND expires_at > %s
            ORDER BY approved_at DESC, id DESC
            LIMIT 1
            """,
            (user_id, now),
        )
        return _row_to_grant(row) if row else None

    def list_grants(
        self,
        *,
        user_id: Optional[int] = None,
        submission_id: Optional[int] = None,
    ) -> Sequence[Grant]:
        filters: List[str] = []
        params: List[Any] = []
        if user_id is not None:
            filters.append("user_id = %s")
            params.append(user_id)
        if submission_id is not None:
            filters.append("submission_id = %s")
            params.append(submission_id)
        query = "SELECT * FROM plan_grants"
        if filters:
            query += " WHERE " + " AND ".join(filters)
        query += " ORDER BY approved_at DESC, id DESC"
        return [_row_to_grant(row) for row in self._fetchall(query, params)]

    def revoke_grants(self, user_id: int, now: datetime, *, expired_only: bool) -> int:
        query = "UPDATE plan_grants SET revoked_at = %s WHERE user_id = %s AND revoked_at IS NULL"
        params: List[Any] = [now, user_id]
        if expired_only:
            query += " AND expires_at <= %s"
            params.append(now)
        self._cursor.execute(query, params)
        return self._cursor.rowcount

    # notifications and audit
    def insert_notification(self, notification: Notification) -> Notification:
        row = self._fetchone(
            """
            INSERT INTO notifications (user_id, type, message, plan, is_read, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                notification.user_id,
                notification.type.value,
                notification.message,
                _db_value(notification.plan),
                notification.is_read,
                notification.created_at,
            ),
        )
        if not row:
            raise RuntimeError("Failed to persist notification")
        return _row_to_notification(row)

    def resolve_notifications(self, user_id: int, plan: PlanName) -> int:
        self._cursor.execute(
            "UPDATE notifications SET is_read = TRUE WHERE user_id = %s AND plan = %s AND is_read = FALSE",
            (user_id, plan.value),
        )
        return self._cursor.rowcount

    def list_notifications(self, *, unread_only: bool = True) -> Sequence[Notification]:
        query = "SELECT * FROM notifications"
        if unread_only:
            query += " WHERE is_read = FALSE"
        query += " ORDER BY created_at DESC, id DESC"
        return [_row_to_notification(row) for row in self._fetchall(query)]

    def append_admin_log(self, entry: AdminLogEntry) -> AdminLogEntry:
        row = self._fetchone(
            """
            INSERT INTO admin_logs (admin_id, action, target_user_id, submission_id, note, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                entry.admin_id,
                entry.action.value,
                entry.target_user_id,
                entry.submission_id,
                entry.note,
                entry.created_at,
            ),
        )
        if not row:
            raise RuntimeError("Failed to persist admin log entry")
        return _row_to_admin_log(row)

    def list_admin_logs(self) -> Sequence[AdminLogEntry]:
        rows = self._fetchall("SELECT * FROM admin_logs ORDER BY id ASC")
        return [_row_to_admin_log(row) for row in rows]


def _default_conn_factory() -> PgConnection:
    from ...app_context import get_conn

    return get_conn()


class PostgresMembershipStore:
    """Concrete store persisting membership records in PostgreSQL."""

    def __init__(self, *, conn_factory: Optional[Callable[[], PgConnection]] = None) -> None:
        self._conn_factory = conn_factory or _default_conn_factory

    @contextmanager
    def transaction(self) -> Iterator[PostgresMembershipTransaction]:
        connection = self._conn_factory()
        cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        try:
            yield PostgresMembershipTransaction(cursor)
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            cursor.close()
            connection.close()


def apply_schema(conn: PgConnection) -> None:
    """Create the membership tables if they do not exist yet."""

    with conn.cursor() as cursor:
        cursor.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    conn.commit()


__all__ = ["PostgresMembershipStore", "PostgresMembershipTransaction", "apply_schema", "SCHEMA_PATH"]
