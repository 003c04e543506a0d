"""Pure functions turning a user, a grant and plan flags into access decisions."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional, Union

from ..membership.models import ApprovalStatus, Submission, SubmissionStatus, User
from ..plans.models import PlanName
from .catalog import (
    CONSULT_LIMIT_KEY,
    MESSAGE_ACTIVE,
    MESSAGE_DELETED,
    MESSAGE_EXPIRED,
    MESSAGE_NO_PLAN,
    MESSAGE_PENDING,
    MESSAGE_REJECTED,
    RECOGNIZED_FEATURES,
    consult_fallback_limit,
)
from .models import FeatureKey, QuotaInfo

_ONE_DAY = timedelta(days=1)


def is_active(user: User, now: datetime) -> bool:
    """Cached-status view of access: approved, unexpired and not deleted."""

    if user.is_deleted or user.approval_status != ApprovalStatus.APPROVED:
        return False
    return user.access_expires_at is None or user.access_expires_at > now


def is_expired(user: User, now: datetime) -> bool:
    return user.access_expires_at is not None and user.access_expires_at <= now


def access_map(feature_flags: Optional[Mapping[str, object]], active: bool) -> Dict[str, bool]:
    """Map every recognized feature to a boolean.

    Inactive users get an all-false map whatever the flags say; unknown keys in
    ``feature_flags`` are ignored.
    """

    access = {feature.value: False for feature in RECOGNIZED_FEATURES}
    if not active or not feature_flags:
        return access
    for feature in RECOGNIZED_FEATURES:
        access[feature.value] = bool(feature_flags.get(feature.value, False))
    return access


def _consult_override(feature_flags: Mapping[str, object]) -> Optional[int]:
    value = feature_flags.get(CONSULT_LIMIT_KEY)
    # bool is an int subclass; a flag like ``CONSULT_LIMIT: true`` is not a limit.
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def quota_map(
    feature_flags: Optional[Mapping[str, object]],
    plan: Optional[Union[PlanName, str]],
) -> Dict[str, QuotaInfo]:
    """Quota information for metered features. Only consults are modelled."""

    flags = feature_flags or {}
    override = _consult_override(flags)
    if override is not None:
        return {FeatureKey.CONSULT_1ON1.value: QuotaInfo(monthly_limit=override)}

    try:
        plan_name = PlanName(plan) if plan is not None else None
    except ValueError:
        plan_name = None
    if plan_name is None:
        return {}
    limit = consult_fallback_limit(plan_name)
    return {
        FeatureKey.CONSULT_1ON1.value: QuotaInfo(monthly_limit=limit, unlimited=limit is None),
    }


def remaining_days(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days left, rounded up and floored at zero."""

    if expires_at is None:
        return None
    left = (expires_at - now) / _ONE_DAY
    return max(0, math.ceil(left))


def select_status_message(
    user: User,
    *,
    active: bool,
    expired: bool,
    latest_submission: Optional[Submission] = None,
) -> str:
    if user.is_deleted:
        return MESSAGE_DELETED
    if user.approval_status == ApprovalStatus.PENDING:
        return MESSAGE_PENDING
    if expired:
        return MESSAGE_EXPIRED
    if active:
        return MESSAGE_ACTIVE
    if latest_submission is not None and latest_submission.status == SubmissionStatus.REJECTED:
        return MESSAGE_REJECTED
    return MESSAGE_NO_PLAN


__all__ = [
    "access_map",
    "is_active",
    "is_expired",
    "quota_map",
    "remaining_days",
    "select_status_message",
]
