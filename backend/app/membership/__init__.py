"""Membership domain: submissions, approvals, grants and accounts."""

from .accounts import AccountService, BcryptPasswordHasher, PasswordHasher
from .approval import ApprovalEngine, apply_approval
from .exceptions import (
    ConflictError,
    InvalidStateError,
    InvalidTokenError,
    MembershipError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    require_admin,
)
from .grants import GrantStore, snapshot_grant
from .ledger import SubmissionLedger, SubmissionNotifier
from .memory import InMemoryMembershipStore
from .models import (
    AdminAction,
    AdminLogEntry,
    ApprovalResult,
    ApprovalStatus,
    Grant,
    Notification,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    PendingSubmission,
    Principal,
    PrincipalRole,
    ProofReference,
    Submission,
    SubmissionStatus,
    SubmissionStatusSummary,
    User,
    UserProjection,
    UserSummary,
)
from .store import MembershipStore, MembershipTransaction

__all__ = [
    "AccountService",
    "AdminAction",
    "AdminLogEntry",
    "ApprovalEngine",
    "ApprovalResult",
    "ApprovalStatus",
    "BcryptPasswordHasher",
    "ConflictError",
    "Grant",
    "GrantStore",
    "InMemoryMembershipStore",
    "InvalidStateError",
    "InvalidTokenError",
    "MembershipError",
    "MembershipStore",
    "MembershipTransaction",
    "NotFoundError",
    "Notification",
    "NotificationType",
    "PasswordHasher",
    "PaymentMethod",
    "PaymentStatus",
    "PendingSubmission",
    "Principal",
    "PrincipalRole",
    "ProofReference",
    "Submission",
    "SubmissionLedger",
    "SubmissionNotifier",
    "SubmissionStatus",
    "SubmissionStatusSummary",
    "UnauthorizedError",
    "User",
    "UserProjection",
    "UserSummary",
    "ValidationError",
    "apply_approval",
    "require_admin",
    "snapshot_grant",
]
