from __future__ import annotations

from datetime import timedelta

import pytest

from backend.app.membership import (
    AccountService,
    AdminAction,
    ApprovalStatus,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    ProofReference,
    SubmissionStatus,
    UnauthorizedError,
    ValidationError,
)
from backend.app.membership.accounts import DEFAULT_FIRST_USER_NUMBER, PASSWORD_RESET_TTL
from backend.app.plans.models import PlanName


def test_register_assigns_sequential_user_numbers(accounts, store):
    first = accounts.register("First@Example.com", "secret-pass", name=" First ")
    second = accounts.register("second@example.com", "secret-pass")

    assert first.email == "first@example.com"
    assert first.name == "First"
    assert first.user_number == DEFAULT_FIRST_USER_NUMBER
    assert second.user_number == DEFAULT_FIRST_USER_NUMBER + 1
    assert first.password_hash == "hashed:secret-pass"
    assert first.approval_status == ApprovalStatus.NONE
    assert first.payment_status == PaymentStatus.NONE

    with store.transaction() as tx:
        registered = [n for n in tx.list_notifications() if n.type == NotificationType.USER_REGISTERED]
    assert len(registered) == 2


def test_register_uses_configured_first_number(store, hasher, clock):
    service = AccountService(store=store, hasher=hasher, clock=clock, first_user_number=500)

    assert service.register("a@example.com", "pw").user_number == 500


def test_register_duplicate_email_case_insensitive(accounts):
    accounts.register("dup@example.com", "pw")

    with pytest.raises(ConflictError):
        accounts.register("DUP@example.com", "pw")


@pytest.mark.parametrize("email", ["", "not-an-email"])
def test_register_rejects_invalid_email(accounts, email):
    with pytest.raises(ValidationError):
        accounts.register(email, "pw")


def test_register_requires_password(accounts):
    with pytest.raises(ValidationError):
        accounts.register("nopw@example.com", "")


def test_admin_create_user_with_plan_is_approved(accounts, store, admin, plans, clock):
    user = accounts.admin_create_user(admin, "vip@example.com", "pw", name="Vip", plan="vip")

    assert user.approval_status == ApprovalStatus.APPROVED
    assert user.payment_status == PaymentStatus.COMPLETED
    assert user.access_expires_at == clock() + timedelta(days=180)

    with store.transaction() as tx:
        submission = tx.latest_submission(user.id)
        grants = tx.list_grants(user_id=user.id)
        actions = [log.action for log in tx.list_admin_logs()]
    assert submission.status == SubmissionStatus.APPROVED
    assert submission.admin_note == "Created by administrator"
    assert len(grants) == 1
    assert grants[0].submission_id == submission.id
    assert actions == [AdminAction.USER_CREATED, AdminAction.SUBMISSION_APPROVED]


def test_admin_create_user_without_plan(accounts, store, admin):
    user = accounts.admin_create_user(admin, "plain@example.com", "pw")

    assert user.approval_status == ApprovalStatus.NONE
    with store.transaction() as tx:
        assert tx.latest_submission(user.id) is None


def test_admin_create_user_inactive_plan_creates_nothing(accounts, store, admin, plans):
    with store.transaction() as tx:
        tx.update_plan(PlanName.PRO, {"is_active": False})

    with pytest.raises(ValidationError):
        accounts.admin_create_user(admin, "pro@example.com", "pw", plan=PlanName.PRO)

    with store.transaction() as tx:
        assert tx.get_user_by_email("pro@example.com") is None


def test_admin_create_user_requires_admin(accounts, member):
    with pytest.raises(UnauthorizedError):
        accounts.admin_create_user(member, "x@example.com", "pw")


def test_update_profile_only_touches_profile(accounts, ledger, store, admin, plans, make_user):
    user = make_user()
    ledger.create_submission(user.id, PlanName.BASIC, PaymentMethod.USDT, ProofReference(path="u/1.png"))

    updated = accounts.update_profile(admin, user.id, name="Renamed", phone="010-1234")

    assert updated.name == "Renamed"
    assert updated.phone == "010-1234"
    assert updated.approval_status == ApprovalStatus.PENDING
    with store.transaction() as tx:
        assert tx.list_admin_logs()[-1].action == AdminAction.USER_UPDATED


def test_update_profile_email_collision(accounts, admin, make_user):
    make_user("taken@example.com")
    other = make_user("other@example.com")

    with pytest.raises(ConflictError):
        accounts.update_profile(admin, other.id, email="TAKEN@example.com")


def test_update_profile_missing_user(accounts, admin):
    with pytest.raises(NotFoundError):
        accounts.update_profile(admin, 77, name="Ghost")


def test_soft_delete_is_idempotent(accounts, store, admin, make_user, clock):
    user = make_user()

    deleted = accounts.soft_delete(admin, user.id)
    again = accounts.soft_delete(admin, user.id)

    assert deleted.is_deleted is True
    assert deleted.deleted_at == clock()
    assert again.is_deleted is True
    with store.transaction() as tx:
        deletions = [log for log in tx.list_admin_logs() if log.action == AdminAction.USER_DELETED]
    assert len(deletions) == 1


def test_set_account_number_once(accounts, make_user):
    user = make_user()

    updated = accounts.set_account_number(user.id, " 5012345 ")
    assert updated.account_number == "5012345"

    with pytest.raises(ConflictError):
        accounts.set_account_number(user.id, "999")


def test_set_account_number_validation(accounts, make_user):
    user = make_user()

    with pytest.raises(ValidationError):
        accounts.set_account_number(user.id, "   ")
    with pytest.raises(NotFoundError):
        accounts.set_account_number(404, "123")


def test_list_users_filters_on_latest_submission(accounts, ledger, engine, admin, plans, make_user, clock):
    approved = make_user("approved@example.com")
    clock.advance(minutes=1)
    rejected = make_user("rejected@example.com")
    clock.advance(minutes=1)
    pending = make_user("pending@example.com")
    clock.advance(minutes=1)
    idle = make_user("idle@example.com")

    proof = ProofReference(path="u/p.png")
    engine.approve(ledger.create_submission(approved.id, PlanName.BASIC, PaymentMethod.USDT, proof).id, admin)
    engine.reject(ledger.create_submission(rejected.id, PlanName.BASIC, PaymentMethod.USDT, proof).id, admin)
    ledger.create_submission(pending.id, PlanName.PRO, PaymentMethod.USDT, proof)

    everyone = accounts.list_users()
    assert [row.user.email for row in everyone] == [
        "idle@example.com",
        "pending@example.com",
        "rejected@example.com",
        "approved@example.com",
    ]
    assert everyone[0].latest_submission is None

    assert [row.user.id for row in accounts.list_users(status="approved")] == [approved.id]
    assert [row.user.id for row in accounts.list_users(status=SubmissionStatus.REJECTED)] == [rejected.id]
    assert [row.user.id for row in accounts.list_users(status="PENDING")] == [pending.id]

    with pytest.raises(ValidationError):
        accounts.list_users(status="archived")


def test_audit_trail_requires_admin(accounts, admin, member, make_user):
    user = make_user()
    accounts.soft_delete(admin, user.id)

    assert [entry.action for entry in accounts.audit_trail(admin)] == [AdminAction.USER_DELETED]
    with pytest.raises(UnauthorizedError):
        accounts.audit_trail(member)


def test_password_reset_replaces_hash_and_consumes_token(accounts, store, make_user, clock):
    user = make_user("reset@example.com")
    with store.transaction() as tx:
        tx.update_user(user.id, {"hashed_refresh_token": "hashed:refresh"})

    token = accounts.request_password_reset(" Reset@Example.com ")
    with store.transaction() as tx:
        stored = tx.get_user(user.id)
    assert stored.reset_token_hash == f"hashed:{token}"
    assert stored.reset_token_expires_at == clock() + PASSWORD_RESET_TTL

    updated = accounts.reset_password(token, "new-secret-pw")

    assert updated.password_hash == "hashed:new-secret-pw"
    assert updated.reset_token_hash is None
    assert updated.reset_token_expires_at is None
    assert updated.hashed_refresh_token is None
    with pytest.raises(InvalidTokenError):
        accounts.reset_password(token, "another-secret")


def test_password_reset_token_expires(accounts, make_user, clock):
    make_user("late@example.com")
    token = accounts.request_password_reset("late@example.com")

    clock.advance(minutes=16)

    with pytest.raises(InvalidTokenError):
        accounts.reset_password(token, "new-secret-pw")


def test_new_reset_request_replaces_earlier_token(accounts, make_user):
    make_user("twice@example.com")
    first = accounts.request_password_reset("twice@example.com")
    second = accounts.request_password_reset("twice@example.com")

    with pytest.raises(InvalidTokenError):
        accounts.reset_password(first, "new-secret-pw")
    assert accounts.reset_password(second, "new-secret-pw").password_hash == "hashed:new-secret-pw"


def test_password_reset_unknown_or_deleted_user(accounts, admin, make_user):
    with pytest.raises(NotFoundError):
        accounts.request_password_reset("nobody@example.com")

    user = make_user("gone@example.com")
    accounts.soft_delete(admin, user.id)
    with pytest.raises(NotFoundError):
        accounts.request_password_reset("gone@example.com")


def test_password_reset_validates_input(accounts, make_user):
    make_user("input@example.com")
    token = accounts.request_password_reset("input@example.com")

    with pytest.raises(ValidationError):
        accounts.reset_password(token, "")
    with pytest.raises(InvalidTokenError):
        accounts.reset_password("   ", "new-secret-pw")
