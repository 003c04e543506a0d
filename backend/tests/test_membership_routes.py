from __future__ import annotations

import pytest
from fastapi import HTTPException

from backend.app.jobs import ExpirySweeper, InMemoryJobRepository, JobQueue, JobStatus, JobType
from backend.app.membership import ApprovalStatus, Principal, PrincipalRole
from backend.app.routes import admin as admin_routes
from backend.app.routes import membership as membership_routes
from backend.app.routes import plans as plans_routes
from backend.app.schemas.admin import AdminCreateUserRequest, ApproveRequest, RevokeRequest
from backend.app.schemas.membership import (
    AccountNumberRequest,
    ForgotPasswordRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SubmitMembershipRequest,
)
from backend.app.schemas.plans import (
    PlanCreateRequest,
    PlanFileRequest,
    PlanToggleRequest,
    PlanUpdateRequest,
)


@pytest.fixture
def wired(monkeypatch, store, clock, accounts, ledger, engine, grants, catalog, entitlements):
    queue = JobQueue(
        InMemoryJobRepository(),
        {JobType.EXPIRE_ACCESS: ExpirySweeper(store, clock=clock).sweep},
        clock=clock,
    )
    for module in (membership_routes, admin_routes, plans_routes):
        monkeypatch.setattr(module, "get_account_service", lambda: accounts, raising=False)
        monkeypatch.setattr(module, "get_submission_ledger", lambda: ledger, raising=False)
        monkeypatch.setattr(module, "get_approval_engine", lambda: engine, raising=False)
        monkeypatch.setattr(module, "get_grant_store", lambda: grants, raising=False)
        monkeypatch.setattr(module, "get_plan_catalog_service", lambda: catalog, raising=False)
        monkeypatch.setattr(module, "get_entitlement_service", lambda: entitlements, raising=False)
        monkeypatch.setattr(module, "get_job_queue", lambda: queue, raising=False)
    return queue


def _principal(user) -> Principal:
    return Principal(id=user.id, role=PrincipalRole.USER, email=user.email)


def _register(email="member@example.com"):
    return membership_routes.register(RegisterRequest(email=email, password="long-enough-pw", name="Member"))


def _submit(principal, plan="BASIC"):
    payload = SubmitMembershipRequest(plan=plan, paymentMethod="USDT", proofPath="uploads/proof.png")
    return membership_routes.submit_membership(payload, principal=principal)


def test_register_then_submit_and_get_approved(wired, admin, plans):
    user = _register()
    principal = _principal(user)
    assert user.user_number == 80000

    submitted = _submit(principal)
    assert submitted.message.startswith("Payment submitted")

    status = membership_routes.submission_status(principal=principal)
    assert status.status_message == "Waiting for approval."

    pending = admin_routes.list_pending_submissions(limit=None, admin=admin)
    assert [item.submission.id for item in pending.items] == [submitted.submission.id]

    approved = admin_routes.approve_submission(
        submitted.submission.id, ApproveRequest(note="paid"), admin=admin
    )
    assert approved.grant.plan.value == "BASIC"

    view = membership_routes.my_entitlements(principal=principal)
    assert view.is_active is True
    assert view.remaining_days == 30
    assert admin_routes.list_pending_submissions(limit=None, admin=admin).items == []


def test_register_duplicate_email_is_conflict(wired):
    _register()

    with pytest.raises(HTTPException) as exc_info:
        _register("MEMBER@example.com")

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"] == "conflict"


def test_submit_without_proof_is_bad_request(wired, plans):
    principal = _principal(_register())
    payload = SubmitMembershipRequest(plan="BASIC", paymentMethod="USDT")

    with pytest.raises(HTTPException) as exc_info:
        membership_routes.submit_membership(payload, principal=principal)

    assert exc_info.value.status_code == 400


def test_duplicate_pending_submission_is_conflict(wired, plans):
    principal = _principal(_register())
    _submit(principal)

    with pytest.raises(HTTPException) as exc_info:
        _submit(principal, "PRO")

    assert exc_info.value.status_code == 409


def test_approve_twice_returns_conflict(wired, admin, plans):
    submitted = _submit(_principal(_register()))
    admin_routes.approve_submission(submitted.submission.id, None, admin=admin)

    with pytest.raises(HTTPException) as exc_info:
        admin_routes.approve_submission(submitted.submission.id, None, admin=admin)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"] == "invalid_state"


def test_reject_route_is_idempotent(wired, admin, plans):
    principal = _principal(_register())
    submitted = _submit(principal)

    first = admin_routes.reject_submission(submitted.submission.id, admin=admin)
    second = admin_routes.reject_submission(submitted.submission.id, admin=admin)

    assert first.submission.status == second.submission.status
    view = membership_routes.my_entitlements(principal=principal)
    assert view.status_message.startswith("Your payment submission was rejected")


def test_approve_missing_submission_is_not_found(wired, admin):
    with pytest.raises(HTTPException) as exc_info:
        admin_routes.approve_submission(999, None, admin=admin)

    assert exc_info.value.status_code == 404


def test_admin_dependency_rejects_members(member):
    with pytest.raises(HTTPException) as exc_info:
        admin_routes._admin(principal=member)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["error"] == "admin_required"


def test_set_account_number_route(wired):
    principal = _principal(_register())

    response = membership_routes.set_account_number(
        AccountNumberRequest(accountNumber="5012345"), principal=principal
    )
    assert response.message == "Account number registered."

    with pytest.raises(HTTPException) as exc_info:
        membership_routes.set_account_number(AccountNumberRequest(accountNumber="1"), principal=principal)
    assert exc_info.value.status_code == 409


def test_plan_file_routes_gate_on_membership(wired, admin, plans):
    principal = _principal(_register())

    with pytest.raises(HTTPException) as exc_info:
        membership_routes.list_plan_files(principal=principal)
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["error"] == "membership_required"

    submitted = _submit(principal, "PRO")
    admin_routes.approve_submission(submitted.submission.id, None, admin=admin)
    admin_routes.attach_plan_file(
        "PRO", "A", PlanFileRequest(path="plans/pro/a.pdf", originalName="a.pdf"), admin=admin
    )

    listing = membership_routes.list_plan_files(principal=principal)
    assert [item.slot.value for item in listing.files] == ["A"]
    assert membership_routes.get_plan_file("a", principal=principal).original_name == "a.pdf"

    with pytest.raises(HTTPException) as exc_info:
        membership_routes.get_plan_file("B", principal=principal)
    assert exc_info.value.status_code == 404


def test_public_plan_routes_hide_inactive_plans(wired, admin, plans):
    admin_routes.toggle_plan("VIP", PlanToggleRequest(isActive=False), admin=admin)

    listed = plans_routes.list_active_plans()
    assert [plan.name for plan in listed.plans] == ["BASIC", "PRO"]
    assert plans_routes.get_plan("basic").duration_days == 30

    with pytest.raises(HTTPException) as exc_info:
        plans_routes.get_plan("VIP")
    assert exc_info.value.status_code == 404

    everything = admin_routes.list_all_plans(admin=admin)
    assert len(everything.plans) == 3


def test_admin_plan_crud_routes(wired, admin):
    created = admin_routes.create_plan(
        PlanCreateRequest(name="pro", label="Pro", price=250000, durationDays=90),
        admin=admin,
    )
    assert created.name == "PRO"

    with pytest.raises(HTTPException) as exc_info:
        admin_routes.create_plan(
            PlanCreateRequest(name="PRO", label="Pro", price=1, durationDays=1), admin=admin
        )
    assert exc_info.value.status_code == 409

    renamed = admin_routes.update_plan("PRO", PlanUpdateRequest(name="VIP", price=600000), admin=admin)
    assert renamed.name == "VIP"
    assert renamed.price == 600000

    deleted = admin_routes.delete_plan("VIP", admin=admin)
    assert deleted.name == "VIP"
    with pytest.raises(HTTPException) as exc_info:
        admin_routes.delete_plan("VIP", admin=admin)
    assert exc_info.value.status_code == 404


def test_admin_user_routes(wired, admin, plans):
    created = admin_routes.create_user(
        AdminCreateUserRequest(email="vip@example.com", password="long-enough-pw", plan="VIP"),
        admin=admin,
    )
    assert created.approval_status == ApprovalStatus.APPROVED

    approved_rows = admin_routes.list_users(status_filter="APPROVED", admin=admin)
    assert [row.user.id for row in approved_rows.items] == [created.id]

    history = admin_routes.grant_history(created.id, admin=admin)
    assert len(history.items) == 1

    revoked = admin_routes.revoke_access(created.id, RevokeRequest(note="chargeback"), admin=admin)
    assert revoked.revoked == 1

    view = membership_routes.my_entitlements(principal=_principal(created))
    assert view.is_active is False

    deleted = admin_routes.delete_user(created.id, admin=admin)
    assert deleted.is_deleted is True

    trail = admin_routes.audit_trail(admin=admin)
    assert [entry.action.value for entry in trail.items][-2:] == ["grant_revoked", "user_deleted"]

    with pytest.raises(HTTPException) as exc_info:
        admin_routes.list_users(status_filter="bogus", admin=admin)
    assert exc_info.value.status_code == 400


def test_run_expiry_job_route(wired, admin, plans, clock):
    submitted = _submit(_principal(_register()))
    admin_routes.approve_submission(submitted.submission.id, None, admin=admin)
    clock.advance(days=31)

    response = admin_routes.run_expiry_job(admin=admin)

    assert response.job.status == JobStatus.COMPLETED
    jobs = admin_routes.list_jobs(limit=10, admin=admin)
    assert [job.id for job in jobs.items] == [response.job.id]


def test_password_reset_routes(wired):
    _register("forgetful@example.com")

    issued = membership_routes.forgot_password(ForgotPasswordRequest(email="forgetful@example.com"))
    assert issued.model_dump(by_alias=True)["resetToken"] == issued.reset_token

    done = membership_routes.reset_password(
        ResetPasswordRequest(token=issued.reset_token, newPassword="brand-new-pw")
    )
    assert done.message == "Password has been reset successfully."

    with pytest.raises(HTTPException) as exc_info:
        membership_routes.reset_password(
            ResetPasswordRequest(token=issued.reset_token, newPassword="brand-new-pw")
        )
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail["error"] == "invalid_token"

    with pytest.raises(HTTPException) as exc_info:
        membership_routes.forgot_password(ForgotPasswordRequest(email="stranger@example.com"))
    assert exc_info.value.status_code == 404
