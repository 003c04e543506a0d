"""Static tables backing the entitlement resolver."""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..plans.models import PlanName
from .models import FeatureKey

RECOGNIZED_FEATURES: Tuple[FeatureKey, ...] = tuple(FeatureKey)

# Plan feature maps may carry this key to override the per-tier consult limit.
CONSULT_LIMIT_KEY = "CONSULT_LIMIT"

# ``None`` means unlimited.
CONSULT_FALLBACK_LIMITS: Dict[PlanName, Optional[int]] = {
    PlanName.BASIC: 2,
    PlanName.PRO: 4,
    PlanName.VIP: None,
}

MESSAGE_DELETED = "Your account has been deactivated."
MESSAGE_PENDING = "Waiting for administrator approval."
MESSAGE_EXPIRED = "Your access has expired. Please renew your plan."
MESSAGE_ACTIVE = "Access granted."
MESSAGE_REJECTED = "Your payment submission was rejected. Please submit again."
MESSAGE_NO_PLAN = "No approved plan yet. Please purchase a plan and wait for approval."

# Default feature maps used when seeding the catalog.
DEFAULT_PLAN_FEATURES: Dict[PlanName, Dict[str, bool]] = {
    PlanName.BASIC: {
        FeatureKey.SIGNAL_CHARTS.value: True,
        FeatureKey.TELEGRAM_BASIC.value: True,
        FeatureKey.CONSULT_1ON1.value: True,
    },
    PlanName.PRO: {
        FeatureKey.SIGNAL_CHARTS.value: True,
        FeatureKey.TELEGRAM_BASIC.value: True,
        FeatureKey.CONSULT_1ON1.value: True,
        FeatureKey.MARTINGALE_EA.value: True,
        FeatureKey.TELEGRAM_PRO.value: True,
    },
    PlanName.VIP: {
        FeatureKey.SIGNAL_CHARTS.value: True,
        FeatureKey.TELEGRAM_BASIC.value: True,
        FeatureKey.CONSULT_1ON1.value: True,
        FeatureKey.MARTINGALE_EA.value: True,
        FeatureKey.TELEGRAM_PRO.value: True,
        FeatureKey.TELEGRAM_VIP.value: True,
    },
}


def consult_fallback_limit(plan: PlanName) -> Optional[int]:
    return CONSULT_FALLBACK_LIMITS.get(plan)
