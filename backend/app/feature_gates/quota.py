"""Consultation quota evaluation for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..entitlements.models import QuotaInfo
from .exceptions import FeatureGateError


@dataclass(frozen=True)
class ConsultQuotaEvaluation:
    """Outcome of checking a consultation booking against the monthly limit."""

    monthly_limit: Optional[int]
    used: int
    requested: int
    unlimited: bool
    allowed: bool

    @property
    def remaining(self) -> Optional[int]:
        if self.unlimited or self.monthly_limit is None:
            return None
        return max(self.monthly_limit - self.used, 0)

    def to_dict(self) -> dict[str, Optional[int] | bool]:
        """Serialize the evaluation for logging or API responses."""

        return {
            "monthly_limit": self.monthly_limit,
            "used": self.used,
            "requested": self.requested,
            "remaining": self.remaining,
            "unlimited": self.unlimited,
            "allowed": self.allowed,
        }


def evaluate_consult_quota(
    quota: Optional[QuotaInfo],
    *,
    used: Optional[int] = None,
    requested: int = 1,
) -> ConsultQuotaEvaluation:
    """Decide whether ``requested`` more consultations fit the monthly limit.

    ``used`` overrides the value reported by the quota, which is always zero
    until consumption is tracked.
    """

    requested = max(requested, 0)
    if quota is None:
        return ConsultQuotaEvaluation(
            monthly_limit=0,
            used=used or 0,
            requested=requested,
            unlimited=False,
            allowed=requested == 0,
        )

    consumed = quota.used if used is None else max(used, 0)
    if quota.unlimited or quota.monthly_limit is None:
        return ConsultQuotaEvaluation(
            monthly_limit=None,
            used=consumed,
            requested=requested,
            unlimited=True,
            allowed=True,
        )

    return ConsultQuotaEvaluation(
        monthly_limit=quota.monthly_limit,
        used=consumed,
        requested=requested,
        unlimited=False,
        allowed=consumed + requested <= quota.monthly_limit,
    )


def assert_consult_quota(
    quota: Optional[QuotaInfo],
    *,
    used: Optional[int] = None,
    requested: int = 1,
    error_code: str = "consult_quota_exceeded",
) -> ConsultQuotaEvaluation:
    """Raise when a booking would exceed the consultation allowance."""

    evaluation = evaluate_consult_quota(quota, used=used, requested=requested)
    if not evaluation.allowed:
        raise FeatureGateError(
            code=error_code,
            message="Monthly consultation limit reached.",
            detail=evaluation.to_dict(),
        )
    return evaluation
