"""Entitlement resolution for approved memberships."""

from .catalog import (
    CONSULT_FALLBACK_LIMITS,
    CONSULT_LIMIT_KEY,
    DEFAULT_PLAN_FEATURES,
    RECOGNIZED_FEATURES,
)
from .models import NO_PLAN, EntitlementView, FeatureKey, QuotaInfo
from .resolver import (
    access_map,
    is_active,
    is_expired,
    quota_map,
    remaining_days,
    select_status_message,
)
from .service import EntitlementService

__all__ = [
    "CONSULT_FALLBACK_LIMITS",
    "CONSULT_LIMIT_KEY",
    "DEFAULT_PLAN_FEATURES",
    "NO_PLAN",
    "RECOGNIZED_FEATURES",
    "EntitlementService",
    "EntitlementView",
    "FeatureKey",
    "QuotaInfo",
    "access_map",
    "is_active",
    "is_expired",
    "quota_map",
    "remaining_days",
    "select_status_message",
]
