"""Errors raised when a caller lacks the entitlement an operation needs."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import status

from ..membership.exceptions import MembershipError


class FeatureGateError(MembershipError):
    """Actionable gating failure surfaced to API callers.

    Unlike the other membership errors the ``code`` varies per instance, e.g.
    ``feature_locked``, ``membership_required`` or ``consult_quota_exceeded``.
    """

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_403_FORBIDDEN,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.code = code
        self.status_code = status_code
