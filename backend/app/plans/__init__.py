"""Plan catalog models. The admin service lives in :mod:`.service`."""

from .models import (
    FeatureFlagValue,
    PlanCreate,
    PlanFile,
    PlanFileSlot,
    PlanMeta,
    PlanName,
    PlanUpdate,
    parse_plan_name,
)

__all__ = [
    "FeatureFlagValue",
    "PlanCreate",
    "PlanFile",
    "PlanFileSlot",
    "PlanMeta",
    "PlanName",
    "PlanUpdate",
    "parse_plan_name",
]
