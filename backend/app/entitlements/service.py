"""Service computing entitlement views and gating plan downloads."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union

from ..feature_gates.exceptions import FeatureGateError
from ..membership.exceptions import NotFoundError
from ..membership.models import Grant, User
from ..membership.store import MembershipStore, MembershipTransaction
from ..plans.models import PlanFile, PlanFileSlot, PlanMeta
from . import resolver
from .models import NO_PLAN, EntitlementView

logger = logging.getLogger(__name__)


class EntitlementService:
    """Reads the user, their active grant and latest submission in one transaction.

    The grant table is authoritative: a user whose cached status says APPROVED
    but who holds no active grant is reported as inactive.
    """

    def __init__(
        self,
        store: MembershipStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_entitlements(self, user_id: int, now: Optional[datetime] = None) -> EntitlementView:
        """Return the entitlement view for ``user_id``.

        Only a missing user raises (:class:`NotFoundError`); every other state
        produces a view with an explanatory status message.
        """

        moment = now or self._clock()
        with self._store.transaction() as tx:
            user = self._load_user(tx, user_id)
            grant = tx.active_grant(user_id, moment)
            latest = tx.latest_submission(user_id)

        active = resolver.is_active(user, moment) and grant is not None
        expired = resolver.is_expired(user, moment)
        features = grant.features_snapshot if active else {}
        plan = grant.plan.value if active else NO_PLAN

        return EntitlementView(
            user_id=user.id,
            user_number=user.user_number,
            email=user.email,
            name=user.name,
            plan=plan,
            payment_status=user.payment_status,
            approval_status=user.approval_status,
            access_expires_at=user.access_expires_at,
            is_active=active,
            is_expired=expired,
            is_deleted=user.is_deleted,
            access=resolver.access_map(features, active),
            quotas=resolver.quota_map(features, grant.plan if active else None),
            approved_at=grant.approved_at if active else None,
            expires_at=grant.expires_at if active else None,
            remaining_days=resolver.remaining_days(grant.expires_at, moment) if active else None,
            status_message=resolver.select_status_message(
                user,
                active=active,
                expired=expired,
                latest_submission=latest,
            ),
        )

    def active_grant(self, user_id: int, now: Optional[datetime] = None) -> Optional[Grant]:
        with self._store.transaction() as tx:
            return tx.active_grant(user_id, now or self._clock())

    def plan_files(self, user_id: int, now: Optional[datetime] = None) -> Dict[PlanFileSlot, PlanFile]:
        """Downloadable files of the plan the user currently holds, by slot."""

        plan = self._granted_plan(user_id, now or self._clock())
        files: Dict[PlanFileSlot, PlanFile] = {}
        for slot in PlanFileSlot:
            plan_file = plan.file_for(slot)
            if plan_file is not None:
                files[slot] = plan_file
        return files

    def plan_file(
        self,
        user_id: int,
        slot: Union[str, PlanFileSlot],
        now: Optional[datetime] = None,
    ) -> PlanFile:
        try:
            file_slot = slot if isinstance(slot, PlanFileSlot) else PlanFileSlot(slot.strip().upper())
        except ValueError as exc:
            raise FeatureGateError(
                code="file_unavailable",
                message="Unknown file slot.",
                status_code=404,
                detail={"slot": str(slot)},
            ) from exc
        plan = self._granted_plan(user_id, now or self._clock())
        plan_file = plan.file_for(file_slot)
        if plan_file is None:
            raise FeatureGateError(
                code="file_unavailable",
                message="No file has been uploaded for this plan.",
                status_code=404,
                detail={"plan": plan.name.value, "slot": file_slot.value},
            )
        return plan_file

    def _granted_plan(self, user_id: int, now: datetime) -> PlanMeta:
        with self._store.transaction() as tx:
            user = self._load_user(tx, user_id)
            grant = tx.active_grant(user_id, now)
            plan = tx.get_plan(grant.plan) if grant is not None else None

        if grant is None or not resolver.is_active(user, now):
            raise FeatureGateError(
                code="membership_required",
                message="An active membership is required to download plan files.",
            )
        if plan is None or not plan.is_active:
            logger.info(
                "Plan files requested for unavailable plan %s by user %s",
                grant.plan.value,
                user_id,
            )
            raise FeatureGateError(
                code="plan_unavailable",
                message="Your plan is no longer available.",
                detail={"plan": grant.plan.value},
            )
        return plan

    @staticmethod
    def _load_user(tx: MembershipTransaction, user_id: int) -> User:
        user = tx.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", detail={"user_id": user_id})
        return user


__all__ = ["EntitlementService"]
