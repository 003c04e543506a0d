"""Domain models for the membership plan catalog."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

FeatureFlagValue = Union[bool, int]


class PlanName(str, Enum):
    """Fixed set of plan tiers a catalog row may be named after."""

    BASIC = "BASIC"
    PRO = "PRO"
    VIP = "VIP"


class PlanFileSlot(str, Enum):
    """Download slots available on every plan."""

    A = "A"
    B = "B"


class PlanFile(BaseModel):
    """Reference to a plan-specific downloadable artifact."""

    path: str
    original_name: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class PlanMeta(BaseModel):
    """Catalog entry describing a purchasable plan."""

    name: PlanName
    label: str
    description: Optional[str] = None
    price: int = Field(gt=0, description="Price in minor currency units")
    duration_days: int = Field(ge=1)
    features: Dict[str, FeatureFlagValue] = Field(default_factory=dict)
    is_active: bool = True
    file_a: Optional[PlanFile] = None
    file_b: Optional[PlanFile] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def file_for(self, slot: PlanFileSlot) -> Optional[PlanFile]:
        return self.file_a if slot == PlanFileSlot.A else self.file_b


class PlanCreate(BaseModel):
    """Validated payload for creating a catalog entry."""

    name: str
    label: str = Field(min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)
    price: int = Field(gt=0)
    duration_days: int = Field(ge=1)
    features: Dict[str, FeatureFlagValue] = Field(default_factory=dict)
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip().upper()


class PlanUpdate(BaseModel):
    """Partial update for a catalog entry. ``None`` leaves a field untouched."""

    rename_to: Optional[str] = None
    label: Optional[str] = Field(default=None, min_length=1, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[int] = Field(default=None, gt=0)
    duration_days: Optional[int] = Field(default=None, ge=1)
    features: Optional[Dict[str, FeatureFlagValue]] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("rename_to")
    @classmethod
    def _normalize_rename(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().upper()

    def changes(self) -> Dict[str, object]:
        """Return the catalog fields this update sets, excluding the rename."""

        data = self.model_dump(exclude_none=True)
        data.pop("rename_to", None)
        return data


def parse_plan_name(value: str) -> PlanName:
    """Normalize a raw plan name, raising ``ValueError`` for unknown tiers."""

    if isinstance(value, PlanName):
        return value
    normalized = str(value).strip().upper()
    try:
        return PlanName(normalized)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in PlanName)
        raise ValueError(f"Invalid plan name. Must be one of: {allowed}") from exc
