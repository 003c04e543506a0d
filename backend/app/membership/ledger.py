"""Submission ledger: payment claims made by users and the admin review queue."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence, Union

from ..plans.models import PlanName, parse_plan_name
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import (
    ApprovalStatus,
    Notification,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    PendingSubmission,
    ProofReference,
    Submission,
    SubmissionStatus,
    SubmissionStatusSummary,
    User,
    UserProjection,
)
from .store import MembershipStore

logger = logging.getLogger("membership.ledger")

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}

NO_SUBMISSION_MESSAGE = "No submission yet."
_PAYMENT_MESSAGES = {
    PaymentStatus.VERIFYING: "Payment is being verified.",
    PaymentStatus.COMPLETED: "Payment completed.",
}
_APPROVAL_MESSAGES = {
    ApprovalStatus.PENDING: "Waiting for approval.",
    ApprovalStatus.APPROVED: "Approved!",
}


class SubmissionNotifier(Protocol):
    """Receives new payment claims once they are committed."""

    def notify_new_submission(self, submission: Submission, user: User) -> None:
        ...


def _coerce_plan_name(value: Union[str, PlanName]) -> PlanName:
    try:
        return parse_plan_name(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def parse_payment_method(value: Union[str, PaymentMethod]) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in PaymentMethod)
        raise ValidationError(f"Invalid payment method. Must be one of: {allowed}") from exc


def status_message_for(user: User) -> str:
    """Render the three-step payment/approval progress as a single message."""

    message = _PAYMENT_MESSAGES.get(user.payment_status, NO_SUBMISSION_MESSAGE)
    return _APPROVAL_MESSAGES.get(user.approval_status, message)


@dataclass(**_dataclass_kwargs)
class SubmissionLedger:
    """Creates payment submissions and lists them for review."""

    store: MembershipStore
    notifier: Optional[SubmissionNotifier] = None
    clock: Optional[Callable[[], datetime]] = None
    pending_limit: Optional[int] = None

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(timezone.utc)

    def create_submission(
        self,
        user_id: int,
        plan_name: Union[str, PlanName],
        payment_method: Union[str, PaymentMethod],
        proof: Optional[ProofReference],
    ) -> Submission:
        """Record a PENDING claim and flag the user as awaiting verification.

        Raises ``ValidationError`` for a missing proof or an unknown/inactive
        plan and ``ConflictError`` when a submission is already under review.
        The pending check and the insert share one transaction; the store's
        uniqueness guarantee closes the remaining race.
        """

        if proof is None:
            raise ValidationError("A payment proof file is required.")
        plan = _coerce_plan_name(plan_name)
        method = parse_payment_method(payment_method)
        now = self._now()

        with self.store.transaction() as tx:
            user = tx.get_user(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User not found", detail={"user_id": user_id})
            if user.is_deleted:
                raise ValidationError("This account has been deactivated.")

            plan_meta = tx.get_plan(plan)
            if plan_meta is None or not plan_meta.is_active:
                raise ValidationError(
                    "The selected plan does not exist or is inactive.",
                    detail={"plan": plan.value},
                )

            if tx.find_pending_submission(user_id) is not None:
                raise ConflictError("A payment submission is already under review.")

            submission = tx.insert_submission(
                Submission(
                    user_id=user_id,
                    plan=plan,
                    payment_method=method,
                    file_path=proof.path,
                    file_original_name=proof.original_name,
                    created_at=now,
                )
            )
            user = tx.update_user(
                user_id,
                {
                    "payment_method": method,
                    "payment_proof_url": proof.path,
                    "payment_status": PaymentStatus.VERIFYING,
                    "approval_status": ApprovalStatus.PENDING,
                },
            )
            tx.insert_notification(
                Notification(
                    user_id=user_id,
                    type=NotificationType.NEW_PAYMENT_PROOF,
                    message=f"{user.name or user.email} submitted payment for the {plan.value} plan.",
                    plan=plan,
                    created_at=now,
                )
            )

        logger.info(
            "Payment submission created",
            extra={"user_id": user_id, "submission_id": submission.id, "plan": plan.value},
        )
        if self.notifier is not None:
            self.notifier.notify_new_submission(submission, user)
        return submission

    def list_pending(self, limit: Optional[int] = None) -> Sequence[PendingSubmission]:
        """Pending submissions, newest first, each with a minimal user projection."""

        effective_limit = limit if limit is not None else self.pending_limit
        with self.store.transaction() as tx:
            pending = tx.list_submissions(status=SubmissionStatus.PENDING, limit=effective_limit)
            entries = []
            for submission in pending:
                user = tx.get_user(submission.user_id)
                if user is None:
                    continue
                entries.append(
                    PendingSubmission(submission=submission, user=UserProjection.from_user(user))
                )
        return entries

    def latest_for_user(self, user_id: int) -> Optional[Submission]:
        with self.store.transaction() as tx:
            return tx.latest_submission(user_id)

    def status_summary(self, user_id: int) -> SubmissionStatusSummary:
        with self.store.transaction() as tx:
            user = tx.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found", detail={"user_id": user_id})
            latest = tx.latest_submission(user_id)
        return SubmissionStatusSummary(
            latest=latest,
            payment_status=user.payment_status,
            approval_status=user.approval_status,
            status_message=status_message_for(user),
        )

    def unread_notifications(self) -> Sequence[Notification]:
        with self.store.transaction() as tx:
            return list(tx.list_notifications(unread_only=True))


__all__ = ["SubmissionLedger", "SubmissionNotifier", "parse_payment_method", "status_message_for"]
