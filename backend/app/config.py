"""Membership configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

STORAGE_BACKENDS = ("postgres", "memory")


@dataclass(frozen=True)
class MembershipConfig:
    """Settings for storage selection, the expiry schedule and admin listings."""

    storage: str
    scheduler_enabled: bool
    sweep_hour: int
    sweep_minute: int
    job_stale_after_minutes: int
    first_user_number: int
    pending_queue_limit: int

    @property
    def job_stale_after(self) -> timedelta:
        return timedelta(minutes=self.job_stale_after_minutes)


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _bounded(name: str, value: int, *, low: int, high: Optional[int] = None) -> int:
    if value < low or (high is not None and value > high):
        upper = f"..{high}" if high is not None else "+"
        raise ValueError(f"{name} must be in range {low}{upper}, got {value}")
    return value


def load_membership_config(env: Optional[Mapping[str, str]] = None) -> MembershipConfig:
    """Load :class:`MembershipConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    storage = (env_mapping.get("MEMBERSHIP_STORAGE") or "postgres").strip().lower()
    if storage not in STORAGE_BACKENDS:
        raise ValueError(f"MEMBERSHIP_STORAGE must be one of {', '.join(STORAGE_BACKENDS)}, got {storage!r}")

    return MembershipConfig(
        storage=storage,
        scheduler_enabled=_to_bool(env_mapping.get("EXPIRY_SCHEDULER_ENABLED"), default=True),
        sweep_hour=_bounded(
            "EXPIRY_SWEEP_HOUR", _to_int(env_mapping.get("EXPIRY_SWEEP_HOUR"), default=0), low=0, high=23
        ),
        sweep_minute=_bounded(
            "EXPIRY_SWEEP_MINUTE", _to_int(env_mapping.get("EXPIRY_SWEEP_MINUTE"), default=0), low=0, high=59
        ),
        job_stale_after_minutes=_bounded(
            "JOB_STALE_AFTER_MINUTES",
            _to_int(env_mapping.get("JOB_STALE_AFTER_MINUTES"), default=30),
            low=1,
        ),
        first_user_number=_bounded(
            "FIRST_USER_NUMBER", _to_int(env_mapping.get("FIRST_USER_NUMBER"), default=80000), low=1
        ),
        pending_queue_limit=_bounded(
            "PENDING_QUEUE_LIMIT", _to_int(env_mapping.get("PENDING_QUEUE_LIMIT"), default=200), low=1
        ),
    )


__all__ = ["MembershipConfig", "STORAGE_BACKENDS", "load_membership_config"]
