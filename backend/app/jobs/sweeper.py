"""Expiry sweeper demoting users whose access has lapsed."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..membership.store import MembershipStore
from .models import SweepSummary

logger = logging.getLogger("membership.expiry")


class ExpirySweeper:
    """Resets the status cache of lapsed users and revokes their expired grants.

    Every user is handled in a separate transaction so one failure does not
    block the rest; a failed user still matches the lapsed query and is
    retried by the next sweep. Demotion is conditional on the user still being
    APPROVED with an expiry in the past, so an approval committed after the
    lapsed users were listed is never undone.
    """

    def __init__(
        self,
        store: MembershipStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        moment = now or self._clock()
        with self._store.transaction() as tx:
            lapsed = [user.id for user in tx.list_lapsed_users(moment)]

        demoted = 0
        revoked = 0
        failures = 0
        for user_id in lapsed:
            try:
                with self._store.transaction() as tx:
                    if not tx.demote_lapsed_user(user_id, moment):
                        continue
                    count = tx.revoke_grants(user_id, moment, expired_only=True)
                demoted += 1
                revoked += count
            except Exception:
                failures += 1
                logger.exception("Failed to expire access for user %s", user_id)

        summary = SweepSummary(
            examined=len(lapsed),
            demoted=demoted,
            grants_revoked=revoked,
            failures=failures,
        )
        logger.info(
            "Expiry sweep finished: examined=%s demoted=%s revoked=%s failures=%s",
            summary.examined,
            summary.demoted,
            summary.grants_revoked,
            summary.failures,
        )
        return summary


__all__ = ["ExpirySweeper"]
