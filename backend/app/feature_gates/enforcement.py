"""Helpers for enforcing feature access on API and service layers."""
from __future__ import annotations

from typing import Mapping, Union

from ..entitlements.models import FeatureKey
from .exceptions import FeatureGateError


def require_feature(
    access: Mapping[str, bool],
    feature: Union[FeatureKey, str],
    *,
    error_code: str = "feature_locked",
    message: str | None = None,
) -> None:
    """Ensure a feature is enabled in an access map before proceeding.

    Parameters
    ----------
    access:
        Access map as produced by the entitlement resolver. Inactive users
        carry an all-false map, so the check also covers expiry and deletion.
    feature:
        The recognized feature key that must be enabled.
    error_code:
        Optional override for the surfaced error code. Defaults to
        ``"feature_locked"``.
    message:
        Optional human-friendly message. If omitted, a default message naming
        the feature is used.
    """

    key = feature.value if isinstance(feature, FeatureKey) else str(feature)
    if not access.get(key):
        raise FeatureGateError(
            code=error_code,
            message=message or f"Your plan does not include '{key}'.",
            detail={"missing_feature": key},
        )
