"""API routes for registration, payment submission and the user's own access."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..entitlements import EntitlementView
from ..membership import MembershipError, Principal
from ..plans.models import PlanFileSlot
from ..schemas.membership import (
    AccountNumberRequest,
    ForgotPasswordRequest,
    MessageResponse,
    PasswordResetTokenResponse,
    PlanFileListResponse,
    PlanFileOut,
    RegisterRequest,
    ResetPasswordRequest,
    SubmissionStatusResponse,
    SubmitMembershipRequest,
    SubmitMembershipResponse,
    UserOut,
)
from ..services.membership import (
    get_account_service,
    get_entitlement_service,
    get_submission_ledger,
)
from .auth import current_principal

router = APIRouter(prefix="/api/membership", tags=["membership"])


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest) -> UserOut:
    try:
        user = get_account_service().register(
            payload.email,
            payload.password,
            name=payload.name,
            phone=payload.phone,
        )
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return UserOut.from_user(user)


@router.post("/password/forgot", response_model=PasswordResetTokenResponse)
def forgot_password(payload: ForgotPasswordRequest) -> PasswordResetTokenResponse:
    # No mail delivery exists yet, so the token is handed back to the caller.
    try:
        token = get_account_service().request_password_reset(payload.email)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PasswordResetTokenResponse(message="Reset token generated", reset_token=token)


@router.post("/password/reset", response_model=MessageResponse)
def reset_password(payload: ResetPasswordRequest) -> MessageResponse:
    try:
        get_account_service().reset_password(payload.token, payload.new_password)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return MessageResponse(message="Password has been reset successfully.")


@router.post("/submit", response_model=SubmitMembershipResponse, status_code=status.HTTP_201_CREATED)
def submit_membership(
    payload: SubmitMembershipRequest,
    *,
    principal: Principal = Depends(current_principal),
) -> SubmitMembershipResponse:
    """Record a payment claim for a plan; an administrator verifies it out of band."""

    try:
        submission = get_submission_ledger().create_submission(
            principal.id,
            payload.plan,
            payload.payment_method,
            payload.proof(),
        )
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return SubmitMembershipResponse(
        message="Payment submitted. Waiting for administrator approval.",
        submission=submission,
    )


@router.get("/status", response_model=SubmissionStatusResponse)
def submission_status(*, principal: Principal = Depends(current_principal)) -> SubmissionStatusResponse:
    try:
        summary = get_submission_ledger().status_summary(principal.id)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return SubmissionStatusResponse.from_summary(summary)


@router.get("/me", response_model=EntitlementView, response_model_by_alias=True)
def my_entitlements(*, principal: Principal = Depends(current_principal)) -> EntitlementView:
    try:
        return get_entitlement_service().build_entitlements(principal.id)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc


@router.put("/account-number", response_model=MessageResponse)
def set_account_number(
    payload: AccountNumberRequest,
    *,
    principal: Principal = Depends(current_principal),
) -> MessageResponse:
    try:
        get_account_service().set_account_number(principal.id, payload.account_number)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return MessageResponse(message="Account number registered.")


@router.get("/plan-files", response_model=PlanFileListResponse)
def list_plan_files(*, principal: Principal = Depends(current_principal)) -> PlanFileListResponse:
    try:
        files = get_entitlement_service().plan_files(principal.id)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanFileListResponse(files=[PlanFileOut.from_file(slot, item) for slot, item in files.items()])


@router.get("/plan-files/{slot}", response_model=PlanFileOut)
def get_plan_file(slot: str, *, principal: Principal = Depends(current_principal)) -> PlanFileOut:
    try:
        plan_file = get_entitlement_service().plan_file(principal.id, slot)
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanFileOut.from_file(PlanFileSlot(slot.strip().upper()), plan_file)
