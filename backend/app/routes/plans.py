"""Public plan catalog routes."""
from __future__ import annotations

from fastapi import APIRouter

from ..membership import MembershipError, NotFoundError
from ..schemas.plans import PlanListResponse, PlanOut
from ..services.membership import get_plan_catalog_service

router = APIRouter(prefix="/api/plans", tags=["plans"])


@router.get("", response_model=PlanListResponse)
def list_active_plans() -> PlanListResponse:
    """Active plans ordered by price."""

    plans = get_plan_catalog_service().list_active()
    return PlanListResponse(plans=[PlanOut.from_plan(plan) for plan in plans])


@router.get("/{name}", response_model=PlanOut)
def get_plan(name: str) -> PlanOut:
    try:
        plan = get_plan_catalog_service().get(name)
        # Inactive plans are hidden from the public catalog.
        if not plan.is_active:
            raise NotFoundError("Plan not found", detail={"plan": plan.name.value})
    except MembershipError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)
