"""Persistence protocols for the membership core.

Every read and write goes through :meth:`MembershipStore.transaction`. A
transaction is all-or-nothing: an exception raised inside the ``with`` block
discards every write made through it. Conditional updates report whether they
matched so callers can detect lost races instead of overwriting blindly.
"""
from __future__ import annotations

from datetime import datetime
from typing import ContextManager, Mapping, Optional, Protocol, Sequence

from ..plans.models import PlanMeta, PlanName
from .models import (
    AdminLogEntry,
    Grant,
    Notification,
    Submission,
    SubmissionStatus,
    User,
)


class MembershipTransaction(Protocol):
    """Operations available inside a single atomic unit of work."""

    # users
    def get_user(self, user_id: int, *, for_update: bool = False) -> Optional[User]:
        ...

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def max_user_number(self) -> Optional[int]:
        ...

    def insert_user(self, user: User) -> User:
        ...

    def update_user(self, user_id: int, changes: Mapping[str, object]) -> Optional[User]:
        ...

    def list_users(self) -> Sequence[User]:
        ...

    def list_lapsed_users(self, now: datetime) -> Sequence[User]:
        ...

    def demote_lapsed_user(self, user_id: int, now: datetime) -> bool:
        """Reset the cached statuses only if the user is still approved and lapsed."""

    def list_reset_candidates(self, now: datetime) -> Sequence[User]:
        """Active users holding a password-reset token that has not expired."""

    # plans
    def get_plan(self, name: PlanName) -> Optional[PlanMeta]:
        ...

    def list_plans(self, *, active_only: bool = False) -> Sequence[PlanMeta]:
        ...

    def insert_plan(self, plan: PlanMeta) -> PlanMeta:
        ...

    def update_plan(self, name: PlanName, changes: Mapping[str, object]) -> Optional[PlanMeta]:
        ...

    def delete_plan(self, name: PlanName) -> bool:
        ...

    # submissions
    def get_submission(self, submission_id: int) -> Optional[Submission]:
        ...

    def find_pending_submission(self, user_id: int) -> Optional[Submission]:
        ...

    def insert_submission(self, submission: Submission) -> Submission:
        ...

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
        """Move a submission from ``expected`` to ``target``; ``False`` if no row matched."""

    def latest_submission(self, user_id: int) -> Optional[Submission]:
        ...

    def list_submissions(
        self,
        *,
        status: Optional[SubmissionStatus] = None,
        limit: Optional[int] = None,
    ) -> Sequence[Submission]:
        ...

    # grants
    def insert_grant(self, grant: Grant) -> Grant:
        ...

    def active_grant(self, user_id: int, now: datetime) -> Optional[Grant]:
        ...

    def list_grants(
        self,
        *,
        user_id: Optional[int] = None,
        submission_id: Optional[int] = None,
    ) -> Sequence[Grant]:
        ...

    def revoke_grants(self, user_id: int, now: datetime, *, expired_only: bool) -> int:
        ...

    # notifications and audit
    def insert_notification(self, notification: Notification) -> Notification:
        ...

    def resolve_notifications(self, user_id: int, plan: PlanName) -> int:
        ...

    def list_notifications(self, *, unread_only: bool = True) -> Sequence[Notification]:
        ...

    def append_admin_log(self, entry: AdminLogEntry) -> AdminLogEntry:
        ...

    def list_admin_logs(self) -> Sequence[AdminLogEntry]:
        ...


class MembershipStore(Protocol):
    """Factory for atomic units of work over the membership tables."""

    def transaction(self) -> ContextManager[MembershipTransaction]:
        ...


__all__ = ["MembershipStore", "MembershipTransaction"]
