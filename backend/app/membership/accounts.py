"""Account lifecycle: registration, admin-managed users and the admin console listing."""
from __future__ import annotations

import logging
import secrets
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Sequence, Union

from passlib.hash import bcrypt

from ..plans.models import PlanName, parse_plan_name
from .approval import apply_approval
from .ledger import parse_payment_method
from .exceptions import ConflictError, InvalidTokenError, NotFoundError, ValidationError, require_admin
from .models import (
    AdminAction,
    AdminLogEntry,
    Notification,
    NotificationType,
    PaymentMethod,
    Principal,
    Submission,
    SubmissionStatus,
    User,
    UserProjection,
    UserSummary,
)
from .store import MembershipStore, MembershipTransaction

logger = logging.getLogger("membership.accounts")

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}

DEFAULT_FIRST_USER_NUMBER = 80000
PASSWORD_RESET_TTL = timedelta(minutes=15)
RESET_TOKEN_BYTES = 32


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


class BcryptPasswordHasher:
    """passlib bcrypt hashing used for stored credentials."""

    def hash(self, password: str) -> str:
        return bcrypt.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        return bcrypt.verify(password, password_hash)


def _normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    if "@" not in normalized:
        raise ValidationError("A valid email address is required.")
    return normalized


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(**_dataclass_kwargs)
class AccountService:
    """Creates and maintains user accounts around the membership cache."""

    store: MembershipStore
    hasher: PasswordHasher
    clock: Optional[Callable[[], datetime]] = None
    first_user_number: int = DEFAULT_FIRST_USER_NUMBER

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(timezone.utc)

    def _insert_account(
        self,
        tx: MembershipTransaction,
        *,
        email: str,
        password: str,
        name: Optional[str],
        phone: Optional[str],
        now: datetime,
    ) -> User:
        if not password:
            raise ValidationError("A password is required.")
        if tx.get_user_by_email(email) is not None:
            raise ConflictError("Email already registered", detail={"email": email})
        current_max = tx.max_user_number()
        user_number = current_max + 1 if current_max is not None else self.first_user_number
        user = tx.insert_user(
            User(
                email=email,
                password_hash=self.hasher.hash(password),
                name=_clean(name),
                phone=_clean(phone),
                user_number=user_number,
                created_at=now,
                updated_at=now,
            )
        )
        tx.insert_notification(
            Notification(
                user_id=user.id,
                type=NotificationType.USER_REGISTERED,
                message=f"New user #{user_number}: {email}",
                created_at=now,
            )
        )
        return user

    def register(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        normalized = _normalize_email(email)
        now = self._now()
        with self.store.transaction() as tx:
            user = self._insert_account(
                tx, email=normalized, password=password, name=name, phone=phone, now=now
            )
        logger.info("User registered", extra={"user_id": user.id, "user_number": user.user_number})
        return user

    def admin_create_user(
        self,
        admin: Principal,
        email: str,
        password: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        plan: Optional[Union[str, PlanName]] = None,
        payment_method: Union[str, PaymentMethod] = PaymentMethod.BANK_TRANSFER,
    ) -> User:
        """Create a user, optionally already holding an approved plan.

        With ``plan`` set, a synthetic submission is created and approved in the
        same transaction as the account, through the same approval routine as
        a reviewed submission.
        """

        require_admin(admin)
        normalized = _normalize_email(email)
        plan_name: Optional[PlanName] = None
        method = PaymentMethod.BANK_TRANSFER
        if plan is not None:
            try:
                plan_name = parse_plan_name(plan)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            method = parse_payment_method(payment_method)
        now = self._now()

        with self.store.transaction() as tx:
            plan_meta = None
            if plan_name is not None:
                plan_meta = tx.get_plan(plan_name)
                if plan_meta is None or not plan_meta.is_active:
                    raise ValidationError(
                        "The selected plan does not exist or is inactive.",
                        detail={"plan": plan_name.value},
                    )

            user = self._insert_account(
                tx, email=normalized, password=password, name=name, phone=phone, now=now
            )
            tx.append_admin_log(
                AdminLogEntry(
                    admin_id=admin.id,
                    action=AdminAction.USER_CREATED,
                    target_user_id=user.id,
                    note=f"plan={plan_name.value}" if plan_name else None,
                    created_at=now,
                )
            )
            if plan_meta is not None:
                submission = tx.insert_submission(
                    Submission(
                        user_id=user.id,
                        plan=plan_meta.name,
                        payment_method=method,
                        created_at=now,
                    )
                )
                apply_approval(
                    tx,
                    submission,
                    plan_meta,
                    admin_id=admin.id,
                    now=now,
                    note="Created by administrator",
                )
                user = tx.get_user(user.id) or user

        logger.info(
            "User created by admin",
            extra={
                "user_id": user.id,
                "admin_id": admin.id,
                "plan": plan_name.value if plan_name else None,
            },
        )
        return user

    def update_profile(
        self,
        admin: Principal,
        user_id: int,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        """Update profile fields only; status fields are owned by approvals and sweeps."""

        require_admin(admin)
        changes = {}
        if name is not None:
            changes["name"] = _clean(name)
        if phone is not None:
            changes["phone"] = _clean(phone)
        if email is not None:
            changes["email"] = _normalize_email(email)
        now = self._now()

        with self.store.transaction() as tx:
            if tx.get_user(user_id, for_update=True) is None:
                raise NotFoundError("User not found", detail={"user_id": user_id})
            if "email" in changes:
                existing = tx.get_user_by_email(changes["email"])
                if existing is not None and existing.id != user_id:
                    raise ConflictError("Email already registered", detail={"email": changes["email"]})
            user = tx.update_user(user_id, changes)
            tx.append_admin_log(
                AdminLogEntry(
                    admin_id=admin.id,
                    action=AdminAction.USER_UPDATED,
                    target_user_id=user_id,
                    note=", ".join(sorted(changes)) or None,
                    created_at=now,
                )
            )
        return user

    def soft_delete(self, admin: Principal, user_id: int) -> User:
        require_admin(admin)
        now = self._now()
        with self.store.transaction() as tx:
            user = tx.get_user(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User not found", detail={"user_id": user_id})
            if user.is_deleted:
                return user
            user = tx.update_user(
                user_id, {"is_deleted": True, "deleted_at": now, "hashed_refresh_token": None}
            )
            tx.append_admin_log(
                AdminLogEntry(
                    admin_id=admin.id,
                    action=AdminAction.USER_DELETED,
                    target_user_id=user_id,
                    created_at=now,
                )
            )
        logger.info("User deactivated", extra={"user_id": user_id, "admin_id": admin.id})
        return user

    def set_account_number(self, user_id: int, account_number: str) -> User:
        """Attach the external trading account identifier. It can be set once."""

        cleaned = _clean(account_number)
        if not cleaned:
            raise ValidationError("An account number is required.")
        with self.store.transaction() as tx:
            user = tx.get_user(user_id, for_update=True)
            if user is None:
                raise NotFoundError("User not found", detail={"user_id": user_id})
            if user.account_number:
                raise ConflictError("An account number is already registered.")
            return tx.update_user(user_id, {"account_number": cleaned})

    def request_password_reset(self, email: str) -> str:
        """Issue a one-time reset token valid for ``PASSWORD_RESET_TTL``.

        Only a hash of the token is stored; the plain token is returned once for
        delivery to the user. Requesting again replaces any earlier token.
        """

        normalized = _normalize_email(email)
        token = secrets.token_urlsafe(RESET_TOKEN_BYTES)
        token_hash = self.hasher.hash(token)
        now = self._now()
        with self.store.transaction() as tx:
            user = tx.get_user_by_email(normalized)
            if user is None or user.is_deleted:
                raise NotFoundError("No user found with that email.")
            tx.update_user(
                user.id,
                {"reset_token_hash": token_hash, "reset_token_expires_at": now + PASSWORD_RESET_TTL},
            )
        logger.info("Password reset requested", extra={"user_id": user.id})
        return token

    def reset_password(self, token: str, new_password: str) -> User:
        """Replace the password of the user holding ``token`` and consume the token.

        The stored refresh token is cleared as well so existing sessions cannot
        be renewed with the old credentials.
        """

        if not new_password:
            raise ValidationError("A password is required.")
        if not token or not token.strip():
            raise InvalidTokenError("Invalid or expired reset token.")
        password_hash = self.hasher.hash(new_password)
        now = self._now()
        with self.store.transaction() as tx:
            matched = next(
                (
                    candidate
                    for candidate in tx.list_reset_candidates(now)
                    if self.hasher.verify(token.strip(), candidate.reset_token_hash)
                ),
                None,
            )
            if matched is None:
                raise InvalidTokenError("Invalid or expired reset token.")
            user = tx.update_user(
                matched.id,
                {
                    "password_hash": password_hash,
                    "reset_token_hash": None,
                    "reset_token_expires_at": None,
                    "hashed_refresh_token": None,
                },
            )
        logger.info("Password reset completed", extra={"user_id": user.id})
        return user

    def audit_trail(self, admin: Principal) -> Sequence[AdminLogEntry]:
        """Every audited admin action, oldest first."""

        require_admin(admin)
        with self.store.transaction() as tx:
            return list(tx.list_admin_logs())

    def list_users(
        self,
        status: Optional[Union[str, SubmissionStatus]] = None,
    ) -> Sequence[UserSummary]:
        """Users newest first, each with their latest submission.

        ``status`` keeps only users whose latest submission has that status.
        """

        wanted: Optional[SubmissionStatus] = None
        if isinstance(status, SubmissionStatus):
            wanted = status
        elif status is not None:
            try:
                wanted = SubmissionStatus(status.strip().upper())
            except ValueError as exc:
                raise ValidationError(f"Unknown submission status: {status}") from exc

        summaries = []
        with self.store.transaction() as tx:
            for user in tx.list_users():
                latest = tx.latest_submission(user.id)
                if wanted is not None and (latest is None or latest.status != wanted):
                    continue
                summaries.append(
                    UserSummary(
                        user=UserProjection.from_user(user),
                        approval_status=user.approval_status,
                        payment_status=user.payment_status,
                        access_expires_at=user.access_expires_at,
                        is_deleted=user.is_deleted,
                        latest_submission=latest,
                        created_at=user.created_at,
                    )
                )
        return summaries


__all__ = [
    "AccountService",
    "BcryptPasswordHasher",
    "DEFAULT_FIRST_USER_NUMBER",
    "PASSWORD_RESET_TTL",
    "PasswordHasher",
]
