"""API schemas for plan catalog endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..plans.models import FeatureFlagValue, PlanCreate, PlanFile, PlanMeta, PlanUpdate


class PlanFileInfo(BaseModel):
    original_name: Optional[str] = Field(default=None, alias="originalName")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_file(cls, plan_file: Optional[PlanFile]) -> Optional["PlanFileInfo"]:
        if plan_file is None:
            return None
        return cls(original_name=plan_file.original_name, updated_at=plan_file.updated_at)


class PlanOut(BaseModel):
    name: str
    label: str
    description: Optional[str] = None
    price: int
    duration_days: int = Field(alias="durationDays")
    features: Dict[str, FeatureFlagValue]
    is_active: bool = Field(alias="isActive")
    file_a: Optional[PlanFileInfo] = Field(default=None, alias="fileA")
    file_b: Optional[PlanFileInfo] = Field(default=None, alias="fileB")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: PlanMeta) -> "PlanOut":
        return cls(
            name=plan.name.value,
            label=plan.label,
            description=plan.description,
            price=plan.price,
            duration_days=plan.duration_days,
            features=dict(plan.features),
            is_active=plan.is_active,
            file_a=PlanFileInfo.from_file(plan.file_a),
            file_b=PlanFileInfo.from_file(plan.file_b),
            updated_at=plan.updated_at,
        )


class PlanListResponse(BaseModel):
    plans: List[PlanOut]


class PlanCreateRequest(BaseModel):
    name: str
    label: str = Field(min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)
    price: int = Field(gt=0)
    duration_days: int = Field(alias="durationDays", ge=1)
    features: Dict[str, FeatureFlagValue] = Field(default_factory=dict)
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    def to_domain(self) -> PlanCreate:
        return PlanCreate(
            name=self.name,
            label=self.label,
            description=self.description,
            price=self.price,
            duration_days=self.duration_days,
            features=self.features,
            is_active=self.is_active,
        )


class PlanUpdateRequest(BaseModel):
    name: Optional[str] = None
    label: Optional[str] = Field(default=None, min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[int] = Field(default=None, gt=0)
    duration_days: Optional[int] = Field(default=None, alias="durationDays", ge=1)
    features: Optional[Dict[str, FeatureFlagValue]] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    def to_domain(self) -> PlanUpdate:
        return PlanUpdate(
            rename_to=self.name,
            label=self.label,
            description=self.description,
            price=self.price,
            duration_days=self.duration_days,
            features=self.features,
            is_active=self.is_active,
        )


class PlanToggleRequest(BaseModel):
    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class PlanFileRequest(BaseModel):
    path: str = Field(min_length=1)
    original_name: Optional[str] = Field(default=None, alias="originalName")

    model_config = ConfigDict(populate_by_name=True)
