"""Feature gating on top of computed entitlement views."""
from .context import EntitlementContext
from .enforcement import require_feature
from .exceptions import FeatureGateError
from .quota import ConsultQuotaEvaluation, assert_consult_quota, evaluate_consult_quota

__all__ = [
    "ConsultQuotaEvaluation",
    "EntitlementContext",
    "FeatureGateError",
    "assert_consult_quota",
    "evaluate_consult_quota",
    "require_feature",
]
