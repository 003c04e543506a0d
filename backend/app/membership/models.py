"""Domain models for users, payment submissions, grants, and the audit trail."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..plans.models import FeatureFlagValue, PlanName


class PaymentStatus(str, Enum):
    """Denormalized payment progress shown to the user."""

    NONE = "NONE"
    VERIFYING = "VERIFYING"
    COMPLETED = "COMPLETED"


class ApprovalStatus(str, Enum):
    """Denormalized approval state cached on the user row."""

    NONE = "NONE"
    PENDING = "PENDING"
    APPROVED = "APPROVED"


class SubmissionStatus(str, Enum):
    """Lifecycle of a payment submission. APPROVED and REJECTED are terminal."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self != SubmissionStatus.PENDING


class PaymentMethod(str, Enum):
    """Out-of-band payment channels a user can claim."""

    BANK_TRANSFER = "BANK_TRANSFER"
    USDT = "USDT"


class PrincipalRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class NotificationType(str, Enum):
    NEW_PAYMENT_PROOF = "NEW_PAYMENT_PROOF"
    USER_REGISTERED = "USER_REGISTERED"


class AdminAction(str, Enum):
    """Tags recorded on every admin-mutating action."""

    SUBMISSION_APPROVED = "submission_approved"
    SUBMISSION_REJECTED = "submission_rejected"
    GRANT_REVOKED = "grant_revoked"
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    PLAN_TOGGLED = "plan_toggled"
    PLAN_DELETED = "plan_deleted"
    PLAN_FILE_UPLOADED = "plan_file_uploaded"
    PLAN_FILE_CLEARED = "plan_file_cleared"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"


class Principal(BaseModel):
    """Authenticated caller validated at the API boundary."""

    id: int
    role: PrincipalRole
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == PrincipalRole.ADMIN


class ProofReference(BaseModel):
    """Pointer to an uploaded payment proof. File bytes live elsewhere."""

    path: str = Field(min_length=1)
    original_name: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("path")
    @classmethod
    def _strip_path(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("A payment proof path is required.")
        return stripped


class User(BaseModel):
    """Identity plus the entitlement cache maintained by approvals and sweeps."""

    id: Optional[int] = None
    email: str
    password_hash: str
    name: Optional[str] = None
    phone: Optional[str] = None
    account_number: Optional[str] = None
    user_number: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    payment_proof_url: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.NONE
    approval_status: ApprovalStatus = ApprovalStatus.NONE
    access_expires_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    hashed_refresh_token: Optional[str] = None
    reset_token_hash: Optional[str] = None
    reset_token_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Submission(BaseModel):
    """A single claim that payment was made for a plan."""

    id: Optional[int] = None
    user_id: int
    plan: PlanName
    payment_method: PaymentMethod
    file_path: Optional[str] = None
    file_original_name: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.PENDING
    admin_note: Optional[str] = None
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Grant(BaseModel):
    """Frozen copy of an approved plan with its expiry."""

    id: Optional[int] = None
    user_id: int
    submission_id: Optional[int] = None
    plan: PlanName
    label: str
    features_snapshot: Dict[str, FeatureFlagValue] = Field(default_factory=dict)
    price_snapshot: int
    duration_days: int
    approved_at: datetime
    expires_at: datetime
    approved_by_id: Optional[int] = None
    revoked_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def is_active_at(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now


class AdminLogEntry(BaseModel):
    """Append-only audit record of an admin mutation."""

    id: Optional[int] = None
    admin_id: int
    action: AdminAction
    target_user_id: Optional[int] = None
    submission_id: Optional[int] = None
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Notification(BaseModel):
    """Admin-queue notification raised by user activity."""

    id: Optional[int] = None
    user_id: int
    type: NotificationType
    message: str
    plan: Optional[PlanName] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class UserProjection(BaseModel):
    """Minimal user fields joined onto admin listings."""

    id: int
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    user_number: Optional[int] = None
    payment_proof_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_user(cls, user: User) -> "UserProjection":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            phone=user.phone,
            user_number=user.user_number,
            payment_proof_url=user.payment_proof_url,
        )


class PendingSubmission(BaseModel):
    """Entry of the admin review queue."""

    submission: Submission
    user: UserProjection

    model_config = ConfigDict(frozen=True)


class SubmissionStatusSummary(BaseModel):
    """Latest submission with the cached statuses and a display message."""

    latest: Optional[Submission] = None
    payment_status: PaymentStatus
    approval_status: ApprovalStatus
    status_message: str

    model_config = ConfigDict(frozen=True)


class ApprovalResult(BaseModel):
    """Outcome of a successful approval."""

    submission: Submission
    grant: Grant
    access_expires_at: datetime

    model_config = ConfigDict(frozen=True)


class UserSummary(BaseModel):
    """Admin console row: a user with their most recent submission."""

    user: UserProjection
    approval_status: ApprovalStatus
    payment_status: PaymentStatus
    access_expires_at: Optional[datetime] = None
    is_deleted: bool = False
    latest_submission: Optional[Submission] = None
    created_at: datetime

    model_config = ConfigDict(frozen=True)
