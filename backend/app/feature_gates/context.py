"""Convenience wrapper around entitlement views for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from ..entitlements.models import EntitlementView, FeatureKey, QuotaInfo
from .enforcement import require_feature
from .quota import ConsultQuotaEvaluation, assert_consult_quota, evaluate_consult_quota


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for a user's entitlements."""

    view: EntitlementView

    @property
    def access(self) -> Dict[str, bool]:
        return dict(self.view.access)

    @property
    def plan(self) -> str:
        return self.view.plan

    @property
    def is_active(self) -> bool:
        return self.view.is_active

    @property
    def consult_quota(self) -> Optional[QuotaInfo]:
        return self.view.quotas.get(FeatureKey.CONSULT_1ON1.value)

    def has(self, feature: Union[FeatureKey, str]) -> bool:
        key = feature.value if isinstance(feature, FeatureKey) else str(feature)
        return bool(self.view.access.get(key))

    def require(self, feature: Union[FeatureKey, str], *, error_code: str = "feature_locked") -> None:
        """Ensure a feature is enabled for the user."""

        if not self.view.is_active:
            error_code = "membership_required"
        require_feature(self.view.access, feature, error_code=error_code)

    def evaluate_consult_quota(self, *, used: Optional[int] = None, requested: int = 1) -> ConsultQuotaEvaluation:
        return evaluate_consult_quota(self.consult_quota, used=used, requested=requested)

    def assert_consult_quota(self, *, used: Optional[int] = None, requested: int = 1) -> ConsultQuotaEvaluation:
        """Require the consult feature, then raise when the booking exceeds the limit."""

        self.require(FeatureKey.CONSULT_1ON1)
        return assert_consult_quota(self.consult_quota, used=used, requested=requested)
