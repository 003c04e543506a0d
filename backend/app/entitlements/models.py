"""Domain models for the user-facing entitlement view."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..membership.models import ApprovalStatus, PaymentStatus

NO_PLAN = "NOMEMBERSHIP"


class FeatureKey(str, Enum):
    """Closed set of feature flags the resolver exposes in the access map."""

    SIGNAL_CHARTS = "SIGNAL_CHARTS"
    TELEGRAM_BASIC = "TELEGRAM_BASIC"
    MARTINGALE_EA = "MARTINGALE_EA"
    TELEGRAM_PRO = "TELEGRAM_PRO"
    TELEGRAM_VIP = "TELEGRAM_VIP"
    CONSULT_1ON1 = "CONSULT_1ON1"


class QuotaInfo(BaseModel):
    """Monthly allowance for a metered feature. ``used`` is not tracked yet."""

    monthly_limit: Optional[int] = Field(default=None, alias="monthlyLimit")
    used: int = 0
    unlimited: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class EntitlementView(BaseModel):
    """Everything a user sees when asking what they currently have access to."""

    user_id: int = Field(alias="userId")
    user_number: Optional[int] = Field(default=None, alias="userNumber")
    email: str
    name: Optional[str] = None
    plan: str = NO_PLAN
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    approval_status: ApprovalStatus = Field(alias="approvalStatus")
    access_expires_at: Optional[datetime] = Field(default=None, alias="accessExpiresAt")
    is_active: bool = Field(alias="isActive")
    is_expired: bool = Field(alias="isExpired")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    access: Dict[str, bool]
    quotas: Dict[str, QuotaInfo] = Field(default_factory=dict)
    approved_at: Optional[datetime] = Field(default=None, alias="approvedAt")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    remaining_days: Optional[int] = Field(default=None, alias="remainingDays")
    status_message: str = Field(alias="statusMessage")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = ["EntitlementView", "FeatureKey", "NO_PLAN", "QuotaInfo"]
