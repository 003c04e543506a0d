"""Administrator routes: review queue, users, plan catalog and jobs."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..membership import MembershipError, Principal, require_admin
from ..schemas.admin import (
    AdminCreateUserRequest,
    AdminLogListResponse,
    AdminUpdateUserRequest,
    ApproveRequest,
    ApproveResponse,
    GrantHistoryResponse,
    JobListResponse,
    JobRunResponse,
    NotificationListResponse,
    PendingSubmissionListResponse,
    RejectResponse,
    RevokeRequest,
    RevokeResponse,
    UserListResponse,
)
from ..schemas.membership import UserOut
from ..schemas.plans import (
    PlanCreateRequest,
    PlanFileRequest,
    PlanListResponse,
    PlanOut,
    PlanToggleRequest,
    PlanUpdateRequest,
)
from ..services.membership import (
    get_account_service,
    get_approval_engine,
    get_grant_store,
    get_job_queue,
    get_plan_catalog_service,
    get_submission_ledger,
)
from .auth import current_principal

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _admin(principal: Principal = Depends(current_principal)) -> Principal:
    try:
        return require_admin(principal)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc


# Review queue


@router.get("/submissions/pending", response_model=PendingSubmissionListResponse)
def list_pending_submissions(
    *,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    admin: Principal = Depends(_admin),
) -> PendingSubmissionListResponse:
    return PendingSubmissionListResponse(items=list(get_submission_ledger().list_pending(limit)))


@router.post("/submissions/{submission_id}/approve", response_model=ApproveResponse)
def approve_submission(
    submission_id: int,
    payload: Optional[ApproveRequest] = None,
    *,
    admin: Principal = Depends(_admin),
) -> ApproveResponse:
    note = payload.note if payload else None
    try:
        result = get_approval_engine().approve(submission_id, admin, note=note)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return ApproveResponse(
        message="Submission approved.",
        access_expires_at=result.access_expires_at,
        grant=result.grant,
    )


@router.post("/submissions/{submission_id}/reject", response_model=RejectResponse)
def reject_submission(submission_id: int, *, admin: Principal = Depends(_admin)) -> RejectResponse:
    try:
        submission = get_approval_engine().reject(submission_id, admin)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return RejectResponse(message="Submission rejected.", submission=submission)


@router.get("/notifications", response_model=NotificationListResponse)
def list_unread_notifications(*, admin: Principal = Depends(_admin)) -> NotificationListResponse:
    return NotificationListResponse(items=list(get_submission_ledger().unread_notifications()))


# Users


@router.get("/users", response_model=UserListResponse)
def list_users(
    *,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    admin: Principal = Depends(_admin),
) -> UserListResponse:
    try:
        users = get_account_service().list_users(status=status_filter)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return UserListResponse(items=list(users))


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: AdminCreateUserRequest, *, admin: Principal = Depends(_admin)) -> UserOut:
    try:
        user = get_account_service().admin_create_user(
            admin,
            payload.email,
            payload.password,
            name=payload.name,
            phone=payload.phone,
            plan=payload.plan,
            payment_method=payload.payment_method,
        )
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return UserOut.from_user(user)


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: AdminUpdateUserRequest,
    *,
    admin: Principal = Depends(_admin),
) -> UserOut:
    try:
        user = get_account_service().update_profile(
            admin,
            user_id,
            name=payload.name,
            phone=payload.phone,
            email=payload.email,
        )
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return UserOut.from_user(user)


@router.delete("/users/{user_id}", response_model=UserOut)
def delete_user(user_id: int, *, admin: Principal = Depends(_admin)) -> UserOut:
    try:
        user = get_account_service().soft_delete(admin, user_id)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return UserOut.from_user(user)


@router.post("/users/{user_id}/revoke", response_model=RevokeResponse)
def revoke_access(
    user_id: int,
    payload: Optional[RevokeRequest] = None,
    *,
    admin: Principal = Depends(_admin),
) -> RevokeResponse:
    try:
        revoked = get_grant_store().revoke(admin, user_id, note=payload.note if payload else None)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return RevokeResponse(message="Access revoked.", revoked=revoked)


@router.get("/users/{user_id}/grants", response_model=GrantHistoryResponse)
def grant_history(user_id: int, *, admin: Principal = Depends(_admin)) -> GrantHistoryResponse:
    return GrantHistoryResponse(items=list(get_grant_store().history(user_id)))


@router.get("/logs", response_model=AdminLogListResponse)
def audit_trail(*, admin: Principal = Depends(_admin)) -> AdminLogListResponse:
    return AdminLogListResponse(items=list(get_account_service().audit_trail(admin)))


# Plan catalog


@router.get("/plans", response_model=PlanListResponse)
def list_all_plans(*, admin: Principal = Depends(_admin)) -> PlanListResponse:
    plans = get_plan_catalog_service().list_all()
    return PlanListResponse(plans=[PlanOut.from_plan(plan) for plan in plans])


@router.post("/plans", response_model=PlanOut, status_code=status.HTTP_201_CREATED)
def create_plan(payload: PlanCreateRequest, *, admin: Principal = Depends(_admin)) -> PlanOut:
    try:
        plan = get_plan_catalog_service().create(admin, payload.to_domain())
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.patch("/plans/{name}", response_model=PlanOut)
def update_plan(name: str, payload: PlanUpdateRequest, *, admin: Principal = Depends(_admin)) -> PlanOut:
    try:
        plan = get_plan_catalog_service().update(admin, name, payload.to_domain())
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.post("/plans/{name}/toggle", response_model=PlanOut)
def toggle_plan(name: str, payload: PlanToggleRequest, *, admin: Principal = Depends(_admin)) -> PlanOut:
    try:
        plan = get_plan_catalog_service().toggle(admin, name, payload.is_active)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.delete("/plans/{name}", response_model=PlanOut)
def delete_plan(name: str, *, admin: Principal = Depends(_admin)) -> PlanOut:
    try:
        plan = get_plan_catalog_service().delete(admin, name)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.put("/plans/{name}/files/{slot}", response_model=PlanOut)
def attach_plan_file(
    name: str,
    slot: str,
    payload: PlanFileRequest,
    *,
    admin: Principal = Depends(_admin),
) -> PlanOut:
    try:
        plan = get_plan_catalog_service().attach_file(
            admin, name, slot, payload.path, payload.original_name
        )
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.delete("/plans/{name}/files/{slot}", response_model=PlanOut)
def clear_plan_file(name: str, slot: str, *, admin: Principal = Depends(_admin)) -> PlanOut:
    try:
        plan = get_plan_catalog_service().clear_file(admin, name, slot)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


# Jobs


@router.post("/jobs/run-expiry", response_model=JobRunResponse)
def run_expiry_job(*, admin: Principal = Depends(_admin)) -> JobRunResponse:
    job = get_job_queue().run_expiry_job()
    return JobRunResponse(message="Access expiry job executed.", job=job)


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(
    *,
    limit: int = Query(default=50, ge=1, le=500),
    admin: Principal = Depends(_admin),
) -> JobListResponse:
    return JobListResponse(items=list(get_job_queue().recent_jobs(limit)))
