"""In-memory membership store suitable for tests and local development."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from ..plans.models import PlanMeta, PlanName
from .exceptions import ConflictError
from .models import (
    AdminLogEntry,
    ApprovalStatus,
    Grant,
    Notification,
    PaymentStatus,
    Submission,
    SubmissionStatus,
    User,
)


@dataclass
class _State:
    users: Dict[int, User] = field(default_factory=dict)
    plans: Dict[PlanName, PlanMeta] = field(default_factory=dict)
    submissions: Dict[int, Submission] = field(default_factory=dict)
    grants: Dict[int, Grant] = field(default_factory=dict)
    notifications: Dict[int, Notification] = field(default_factory=dict)
    admin_logs: List[AdminLogEntry] = field(default_factory=list)
    sequences: Dict[str, int] = field(default_factory=dict)

    def copy(self) -> "_State":
        return replace(
            self,
            users=dict(self.users),
            plans=dict(self.plans),
            submissions=dict(self.submissions),
            grants=dict(self.grants),
            notifications=dict(self.notifications),
            admin_logs=list(self.admin_logs),
            sequences=dict(self.sequences),
        )

    def next_id(self, name: str) -> int:
        value = self.sequences.get(name, 0) + 1
        self.sequences[name] = value
        return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(items, *, key):
    return sorted(items, key=lambda item: (key(item), item.id or 0), reverse=True)


class _InMemoryTransaction:
    def __init__(self, state: _State) -> None:
        self._state = state

    # users
    def get_user(self, user_id: int, *, for_update: bool = False) -> Optional[User]:
        return self._state.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        lookup = email.strip().lower()
        for user in self._state.users.values():
            if user.email.lower() == lookup:
                return user
        return None

    def max_user_number(self) -> Optional[int]:
        numbers = [user.user_number for user in self._state.users.values() if user.user_number is not None]
        return max(numbers) if numbers else None

    def insert_user(self, user: User) -> User:
        if self.get_user_by_email(user.email) is not None:
            raise ConflictError("Email already registered")
        stored = user.model_copy(update={"id": self._state.next_id("users")})
        self._state.users[stored.id] = stored
        return stored

    def update_user(self, user_id: int, changes: Mapping[str, object]) -> Optional[User]:
        user = self._state.users.get(user_id)
        if user is None:
            return None
        email = changes.get("email")
        if isinstance(email, str):
            existing = self.get_user_by_email(email)
            if existing is not None and existing.id != user_id:
                raise ConflictError("Email already registered")
        updated = user.model_copy(update={**changes, "updated_at": _utcnow()})
        self._state.users[user_id] = updated
        return updated

    def list_users(self) -> Sequence[User]:
        return _newest_first(self._state.users.values(), key=lambda user: user.created_at)

    def list_lapsed_users(self, now: datetime) -> Sequence[User]:
        return [
            user
            for user in self._state.users.values()
            if not user.is_deleted
            and user.approval_status == ApprovalStatus.APPROVED
            and user.access_expires_at is not None
            and user.access_expires_at < now
        ]

    def demote_lapsed_user(self, user_id: int, now: datetime) -> bool:
        user = self._state.users.get(user_id)
        if (
            user is None
            or user.approval_status != ApprovalStatus.APPROVED
            or user.access_expires_at is None
            or user.access_expires_at >= now
        ):
            return False
        self.update_user(
            user_id,
            {"approval_status": ApprovalStatus.NONE, "payment_status": PaymentStatus.NONE},
        )
        return True

    def list_reset_candidates(self, now: datetime) -> Sequence[User]:
        return [
            user
            for user in self._state.users.values()
            if not user.is_deleted
            and user.reset_token_hash is not None
            and user.reset_token_expires_at is not None
            and user.reset_token_expires_at >= now
        ]

    # plans
    def get_plan(self, name: PlanName) -> Optional[PlanMeta]:
        return self._state.plans.get(name)

    def list_plans(self, *, active_only: bool = False) -> Sequence[PlanMeta]:
        plans = [plan for plan in self._state.plans.values() if plan.is_active or not active_only]
        return sorted(plans, key=lambda plan: (plan.price, plan.name.value))

    def insert_plan(self, plan: PlanMeta) -> PlanMeta:
        if plan.name in self._state.plans:
            raise ConflictError(f"Plan {plan.name.value} already exists")
        self._state.plans[plan.name] = plan
        return plan

    def update_plan(self, name: PlanName, changes: Mapping[str, object]) -> Optional[PlanMeta]:
        plan = self._state.plans.get(name)
        if plan is None:
            return None
        updated = plan.model_copy(update={**changes, "updated_at": _utcnow()})
        if updated.name != name:
            if updated.name in self._state.plans:
                raise ConflictError(f"Plan {updated.name.value} already exists")
            del self._state.plans[name]
        self._state.plans[updated.name] = updated
        return updated

    def delete_plan(self, name: PlanName) -> bool:
        return self._state.plans.pop(name, None) is not None

    # submissions
    def get_submission(self, submission_id: int) -> Optional[Submission]:
        return self._state.submissions.get(submission_id)

    def find_pending_submission(self, user_id: int) -> Optional[Submission]:
        for submission in self._state.submissions.values():
            if submission.user_id == user_id and submission.status == SubmissionStatus.PENDING:
                return submission
        return None

    def insert_submission(self, submission: Submission) -> Submission:
        if submission.status == SubmissionStatus.PENDING and self.find_pending_submission(submission.user_id):
            raise ConflictError("A payment submission is already under review")
        stored = submission.model_copy(update={"id": self._state.next_id("submissions")})
        self._state.submissions[stored.id] = stored
        return stored

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
        submission = self._state.submissions.get(submission_id)
        if submission is None or submission.status != expected:
            return False
        self._state.submissions[submission_id] = submission.model_copy(
            update={
                "status": target,
                "reviewed_by_id": reviewed_by_id,
                "reviewed_at": reviewed_at,
                "admin_note": admin_note,
            }
        )
        return True

    def latest_submission(self, user_id: int) -> Optional[Submission]:
        owned = [s for s in self._state.submissions.values() if s.user_id == user_id]
        ordered = _newest_first(owned, key=lambda submission: submission.created_at)
        return ordered[0] if ordered else None

    def list_submissions(
        self,
        *,
        status: Optional[SubmissionStatus] = None,
        limit: Optional[int] = None,
    ) -> Sequence[Submission]:
        matching = [s for s in self._state.submissions.values() if status is None or s.status == status]
        ordered = _newest_first(matching, key=lambda submission: submission.created_at)
        return ordered[:limit] if limit is not None else ordered

    # grants
    def insert_grant(self, grant: Grant) -> Grant:
        stored = grant.model_copy(update={"id": self._state.next_id("grants")})
        self._state.grants[stored.id] = stored
        return stored

    def active_grant(self, user_id: int, now: datetime) -> Optional[Grant]:
        candidates = [
            grant
            for grant in self._state.grants.values()
            if grant.user_id == user_id and grant.is_active_at(now)
        ]
        ordered = _newest_first(candidates, key=lambda grant: grant.approved_at)
        return ordered[0] if ordered else None

    def list_grants(
        self,
        *,
        user_id: Optional[int] = None,
        submission_id: Optional[int] = None,
    ) -> Sequence[Grant]:
        matching = [
            grant
            for grant in self._state.grants.values()
            if (user_id is None or grant.user_id == user_id)
            and (submission_id is None or grant.submission_id == submission_id)
        ]
        return _newest_first(matching, key=lambda grant: grant.approved_at)

    def revoke_grants(self, user_id: int, now: datetime, *, expired_only: bool) -> int:
        revoked = 0
        for grant_id, grant in list(self._state.grants.items()):
            if grant.user_id != user_id or grant.revoked_at is not None:
                continue
            if expired_only and grant.expires_at > now:
                continue
            self._state.grants[grant_id] = grant.model_copy(update={"revoked_at": now})
            revoked += 1
        return revoked

    # notifications and audit
    def insert_notification(self, notification: Notification) -> Notification:
        stored = notification.model_copy(update={"id": self._state.next_id("notifications")})
        self._state.notifications[stored.id] = stored
        return stored

    def resolve_notifications(self, user_id: int, plan: PlanName) -> int:
        resolved = 0
        for notification_id, notification in list(self._state.notifications.items()):
            if notification.user_id == user_id and notification.plan == plan and not notification.is_read:
                self._state.notifications[notification_id] = notification.model_copy(update={"is_read": True})
                resolved += 1
        return resolved

    def list_notifications(self, *, unread_only: bool = True) -> Sequence[Notification]:
        matching = [n for n in self._state.notifications.values() if not (unread_only and n.is_read)]
        return _newest_first(matching, key=lambda notification: notification.created_at)

    def append_admin_log(self, entry: AdminLogEntry) -> AdminLogEntry:
        stored = entry.model_copy(update={"id": self._state.next_id("admin_logs")})
        self._state.admin_logs.append(stored)
        return stored

    def list_admin_logs(self) -> Sequence[AdminLogEntry]:
        return list(self._state.admin_logs)


class InMemoryMembershipStore:
    """Serializable store: one transaction at a time, committed by swapping state."""

    def __init__(self) -> None:
        self._state = _State()
        self._lock = threading.Lock()
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Iterator[_InMemoryTransaction]:
        if getattr(self._local, "active", False):
            raise RuntimeError("Nested transactions are not supported")
        with self._lock:
            self._local.active = True
            try:
                working = self._state.copy()
                yield _InMemoryTransaction(working)
                self._state = working
            finally:
                self._local.active = False

    def clear(self) -> None:
        with self._lock:
            self._state = _State()


__all__ = ["InMemoryMembershipStore"]
