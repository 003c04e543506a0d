"""Approval engine moving payment submissions to their terminal states.

Both transitions run inside a single store transaction and rely on a
conditional update (``WHERE status = 'PENDING'``) as the only concurrency
guard. A conditional update that matches no row means another reviewer got
there first; approval surfaces that as :class:`ConflictError`, rejection
re-reads the row and re-evaluates.
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..plans.models import PlanMeta
from .exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError, require_admin
from .grants import rebuild_status_cache, snapshot_grant
from .models import (
    AdminAction,
    AdminLogEntry,
    ApprovalResult,
    ApprovalStatus,
    PaymentStatus,
    Principal,
    Submission,
    SubmissionStatus,
)
from .store import MembershipStore, MembershipTransaction

logger = logging.getLogger("membership.approval")

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


def _load_submission(tx: MembershipTransaction, submission_id: int) -> Submission:
    submission = tx.get_submission(submission_id)
    if submission is None:
        raise NotFoundError("Submission not found", detail={"submission_id": submission_id})
    return submission


def _require_active_plan(tx: MembershipTransaction, submission: Submission) -> PlanMeta:
    plan = tx.get_plan(submission.plan)
    if plan is None or not plan.is_active:
        raise ValidationError(
            "The plan for this submission does not exist or is inactive.",
            detail={"plan": submission.plan.value},
        )
    return plan


def apply_approval(
    tx: MembershipTransaction,
    submission: Submission,
    plan: PlanMeta,
    *,
    admin_id: int,
    now: datetime,
    note: Optional[str] = None,
) -> ApprovalResult:
    """Approve a PENDING submission within an open transaction.

    Writes the grant snapshot, the submission transition, the user's status
    cache, notification resolution and the audit entry. Raises
    :class:`ConflictError` when the conditional transition matches nothing.
    """

    transitioned = tx.transition_submission(
        submission.id,
        expected=SubmissionStatus.PENDING,
        target=SubmissionStatus.APPROVED,
        reviewed_by_id=admin_id,
        reviewed_at=now,
        admin_note=note,
    )
    if not transitioned:
        logger.warning(
            "Lost approval race",
            extra={"submission_id": submission.id, "admin_id": admin_id},
        )
        raise ConflictError(
            "Submission was processed by another reviewer. Refresh and check its current status.",
            detail={"submission_id": submission.id},
        )

    grant = tx.insert_grant(
        snapshot_grant(
            plan,
            user_id=submission.user_id,
            submission_id=submission.id,
            admin_id=admin_id,
            now=now,
        )
    )
    tx.update_user(
        submission.user_id,
        {
            "payment_method": submission.payment_method,
            "payment_status": PaymentStatus.COMPLETED,
            "approval_status": ApprovalStatus.APPROVED,
            "access_expires_at": grant.expires_at,
        },
    )
    tx.resolve_notifications(submission.user_id, submission.plan)
    tx.append_admin_log(
        AdminLogEntry(
            admin_id=admin_id,
            action=AdminAction.SUBMISSION_APPROVED,
            target_user_id=submission.user_id,
            submission_id=submission.id,
            note=note,
            created_at=now,
        )
    )
    approved = tx.get_submission(submission.id) or submission
    return ApprovalResult(submission=approved, grant=grant, access_expires_at=grant.expires_at)


@dataclass(**_dataclass_kwargs)
class ApprovalEngine:
    """Admin approve/reject workflow over the membership store."""

    store: MembershipStore
    clock: Optional[Callable[[], datetime]] = None

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(timezone.utc)

    def approve(
        self,
        submission_id: int,
        reviewer: Principal,
        note: Optional[str] = None,
    ) -> ApprovalResult:
        """Approve a PENDING submission and grant the plan from ``now``.

        Any non-PENDING submission raises :class:`InvalidStateError`, including
        one that is already APPROVED.
        """

        require_admin(reviewer)
        now = self._now()
        with self.store.transaction() as tx:
            submission = _load_submission(tx, submission_id)
            if submission.status.is_terminal:
                raise InvalidStateError(
                    f"Submission has already been processed ({submission.status.value}).",
                    detail={"submission_id": submission_id, "status": submission.status.value},
                )
            plan = _require_active_plan(tx, submission)
            result = apply_approval(tx, submission, plan, admin_id=reviewer.id, now=now, note=note)

        logger.info(
            "Submission approved",
            extra={
                "submission_id": submission_id,
                "user_id": submission.user_id,
                "plan": submission.plan.value,
                "admin_id": reviewer.id,
                "expires_at": result.access_expires_at.isoformat(),
            },
        )
        return result

    def reject(self, submission_id: int, reviewer: Principal) -> Submission:
        """Reject a PENDING submission. Rejecting twice is a no-op."""

        require_admin(reviewer)
        now = self._now()
        with self.store.transaction() as tx:
            submission = _load_submission(tx, submission_id)
            if self._already_rejected(submission):
                return submission

            transitioned = tx.transition_submission(
                submission_id,
                expected=SubmissionStatus.PENDING,
                target=SubmissionStatus.REJECTED,
                reviewed_by_id=reviewer.id,
                reviewed_at=now,
            )
            if not transitioned:
                current = _load_submission(tx, submission_id)
                if self._already_rejected(current):
                    return current
                raise ConflictError(
                    "Submission changed while it was being rejected.",
                    detail={"submission_id": submission_id},
                )

            # An earlier approval may still be running; the rejected claim must not hide it.
            rebuild_status_cache(tx, submission.user_id, now)
            tx.append_admin_log(
                AdminLogEntry(
                    admin_id=reviewer.id,
                    action=AdminAction.SUBMISSION_REJECTED,
                    target_user_id=submission.user_id,
                    submission_id=submission_id,
                    created_at=now,
                )
            )
            rejected = _load_submission(tx, submission_id)

        logger.info(
            "Submission rejected",
            extra={"submission_id": submission_id, "user_id": submission.user_id, "admin_id": reviewer.id},
        )
        return rejected

    @staticmethod
    def _already_rejected(submission: Submission) -> bool:
        if submission.status == SubmissionStatus.APPROVED:
            raise InvalidStateError(
                "Cannot reject an approved submission.",
                detail={"submission_id": submission.id, "status": submission.status.value},
            )
        return submission.status == SubmissionStatus.REJECTED


__all__ = ["ApprovalEngine", "apply_approval"]
