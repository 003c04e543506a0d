"""API schemas for administrator endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..jobs import JobRecord
from ..membership import (
    AdminLogEntry,
    Grant,
    Notification,
    PaymentMethod,
    PendingSubmission,
    Submission,
    UserSummary,
)


class PendingSubmissionListResponse(BaseModel):
    items: List[PendingSubmission]


class ApproveRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=500)


class ApproveResponse(BaseModel):
    message: str
    access_expires_at: datetime = Field(alias="accessExpiresAt")
    grant: Grant

    model_config = ConfigDict(populate_by_name=True)


class RejectResponse(BaseModel):
    message: str
    submission: Submission


class NotificationListResponse(BaseModel):
    items: List[Notification]


class AdminCreateUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=40)
    plan: Optional[str] = None
    payment_method: PaymentMethod = Field(default=PaymentMethod.BANK_TRANSFER, alias="paymentMethod")

    model_config = ConfigDict(populate_by_name=True)


class AdminUpdateUserRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=40)
    email: Optional[EmailStr] = None


class UserListResponse(BaseModel):
    items: List[UserSummary]


class RevokeRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=500)


class RevokeResponse(BaseModel):
    message: str
    revoked: int


class GrantHistoryResponse(BaseModel):
    items: List[Grant]


class AdminLogListResponse(BaseModel):
    items: List[AdminLogEntry]


class JobRunResponse(BaseModel):
    message: str
    job: Optional[JobRecord] = None


class JobListResponse(BaseModel):
    items: List[JobRecord]
