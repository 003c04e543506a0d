"""Grant store: frozen snapshots of approved plans and explicit revocation."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from ..plans.models import PlanMeta
from .exceptions import NotFoundError, require_admin
from .models import AdminAction, AdminLogEntry, ApprovalStatus, Grant, PaymentStatus, Principal
from .store import MembershipStore, MembershipTransaction

logger = logging.getLogger("membership.grants")

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


def snapshot_grant(
    plan: PlanMeta,
    *,
    user_id: int,
    submission_id: Optional[int],
    admin_id: Optional[int],
    now: datetime,
) -> Grant:
    """Copy the plan's label, features, price and duration into a new grant."""

    return Grant(
        user_id=user_id,
        submission_id=submission_id,
        plan=plan.name,
        label=plan.label,
        features_snapshot=dict(plan.features),
        price_snapshot=plan.price,
        duration_days=plan.duration_days,
        approved_at=now,
        expires_at=now + timedelta(days=plan.duration_days),
        approved_by_id=admin_id,
    )


def rebuild_status_cache(tx: MembershipTransaction, user_id: int, now: datetime) -> None:
    """Re-derive the user's cached statuses from the ledger and the grant table.

    A submission still under review keeps the user PENDING/VERIFYING. Otherwise
    an active grant yields APPROVED/COMPLETED with its expiry, and no grant
    resets everything to NONE.
    """

    grant = tx.active_grant(user_id, now)
    expires_at = grant.expires_at if grant is not None else None
    if tx.find_pending_submission(user_id) is not None:
        changes = {
            "payment_status": PaymentStatus.VERIFYING,
            "approval_status": ApprovalStatus.PENDING,
            "access_expires_at": expires_at,
        }
    elif grant is not None:
        changes = {
            "payment_status": PaymentStatus.COMPLETED,
            "approval_status": ApprovalStatus.APPROVED,
            "access_expires_at": expires_at,
        }
    else:
        changes = {
            "payment_status": PaymentStatus.NONE,
            "approval_status": ApprovalStatus.NONE,
            "access_expires_at": None,
        }
    tx.update_user(user_id, changes)


@dataclass(**_dataclass_kwargs)
class GrantStore:
    """Reads grant history and performs admin revocations."""

    store: MembershipStore
    clock: Optional[Callable[[], datetime]] = None

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(timezone.utc)

    def active_grant(self, user_id: int, now: Optional[datetime] = None) -> Optional[Grant]:
        """Most recently approved grant that is neither revoked nor expired."""

        with self.store.transaction() as tx:
            return tx.active_grant(user_id, now or self._now())

    def history(self, user_id: int) -> Sequence[Grant]:
        with self.store.transaction() as tx:
            return list(tx.list_grants(user_id=user_id))

    def revoke(self, admin: Principal, user_id: int, note: Optional[str] = None) -> int:
        """Revoke every open grant for ``user_id`` and rebuild the cached statuses.

        A renewal still under review stays in the queue and keeps the user PENDING.
        """

        require_admin(admin)
        now = self._now()
        with self.store.transaction() as tx:
            if tx.get_user(user_id, for_update=True) is None:
                raise NotFoundError("User not found", detail={"user_id": user_id})
            revoked = tx.revoke_grants(user_id, now, expired_only=False)
            rebuild_status_cache(tx, user_id, now)
            tx.append_admin_log(
                AdminLogEntry(
                    admin_id=admin.id,
                    action=AdminAction.GRANT_REVOKED,
                    target_user_id=user_id,
                    note=note,
                    created_at=now,
                )
            )
        logger.info(
            "Revoked grants",
            extra={"user_id": user_id, "admin_id": admin.id, "revoked": revoked},
        )
        return revoked


__all__ = ["GrantStore", "rebuild_status_cache", "snapshot_grant"]
