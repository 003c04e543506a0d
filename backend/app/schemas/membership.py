"""API schemas for the user-facing membership endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..membership import (
    ApprovalStatus,
    PaymentMethod,
    PaymentStatus,
    ProofReference,
    Submission,
    SubmissionStatusSummary,
    User,
)
from ..plans.models import PlanFile, PlanFileSlot


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=40)

    model_config = ConfigDict(populate_by_name=True)


class UserOut(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    user_number: Optional[int] = Field(default=None, alias="userNumber")
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    approval_status: ApprovalStatus = Field(alias="approvalStatus")
    access_expires_at: Optional[datetime] = Field(default=None, alias="accessExpiresAt")
    is_deleted: bool = Field(default=False, alias="isDeleted")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            phone=user.phone,
            user_number=user.user_number,
            account_number=user.account_number,
            payment_status=user.payment_status,
            approval_status=user.approval_status,
            access_expires_at=user.access_expires_at,
            is_deleted=user.is_deleted,
            created_at=user.created_at,
        )


class SubmitMembershipRequest(BaseModel):
    plan: str
    payment_method: PaymentMethod = Field(alias="paymentMethod")
    proof_path: Optional[str] = Field(default=None, alias="proofPath")
    proof_original_name: Optional[str] = Field(default=None, alias="proofOriginalName")

    model_config = ConfigDict(populate_by_name=True)

    def proof(self) -> Optional[ProofReference]:
        if not self.proof_path or not self.proof_path.strip():
            return None
        return ProofReference(path=self.proof_path, original_name=self.proof_original_name)


class MessageResponse(BaseModel):
    message: str


class SubmitMembershipResponse(BaseModel):
    message: str
    submission: Submission


class SubmissionStatusResponse(BaseModel):
    latest: Optional[Submission] = None
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    approval_status: ApprovalStatus = Field(alias="approvalStatus")
    status_message: str = Field(alias="statusMessage")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: SubmissionStatusSummary) -> "SubmissionStatusResponse":
        return cls(
            latest=summary.latest,
            payment_status=summary.payment_status,
            approval_status=summary.approval_status,
            status_message=summary.status_message,
        )


class AccountNumberRequest(BaseModel):
    account_number: str = Field(alias="accountNumber", min_length=1, max_length=64)

    model_config = ConfigDict(populate_by_name=True)


class PlanFileOut(BaseModel):
    slot: PlanFileSlot
    original_name: Optional[str] = Field(default=None, alias="originalName")
    path: str
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_file(cls, slot: PlanFileSlot, plan_file: PlanFile) -> "PlanFileOut":
        return cls(
            slot=slot,
            original_name=plan_file.original_name,
            path=plan_file.path,
            updated_at=plan_file.updated_at,
        )


class PlanFileListResponse(BaseModel):
    files: List[PlanFileOut]



class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class PasswordResetTokenResponse(BaseModel):
    message: str
    reset_token: str = Field(alias="resetToken")

    model_config = ConfigDict(populate_by_name=True)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)
