"""Admin-managed catalog of purchasable plans."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence, Union

from ..membership.exceptions import ConflictError, NotFoundError, ValidationError, require_admin
from ..membership.models import AdminAction, AdminLogEntry, Principal
from ..membership.store import MembershipStore, MembershipTransaction
from .models import PlanCreate, PlanFile, PlanFileSlot, PlanMeta, PlanName, PlanUpdate, parse_plan_name

logger = logging.getLogger("membership.plans")

_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


def _plan_name(value: Union[str, PlanName]) -> PlanName:
    try:
        return parse_plan_name(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _slot(value: Union[str, PlanFileSlot]) -> PlanFileSlot:
    if isinstance(value, PlanFileSlot):
        return value
    try:
        return PlanFileSlot(str(value).strip().upper())
    except ValueError as exc:
        raise ValidationError("Invalid file slot. Must be one of: A, B") from exc


def _load_plan(tx: MembershipTransaction, name: PlanName) -> PlanMeta:
    plan = tx.get_plan(name)
    if plan is None:
        raise NotFoundError("Plan not found", detail={"plan": name.value})
    return plan


@dataclass(**_dataclass_kwargs)
class PlanCatalogService:
    """Reads and mutates plan rows; every mutation is audited in its transaction.

    Grants hold their own snapshot, so nothing here alters access already
    granted to users.
    """

    store: MembershipStore
    clock: Optional[Callable[[], datetime]] = None

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(timezone.utc)

    def _audit(
        self,
        tx: MembershipTransaction,
        admin: Principal,
        action: AdminAction,
        note: str,
        now: datetime,
    ) -> None:
        tx.append_admin_log(AdminLogEntry(admin_id=admin.id, action=action, note=note, created_at=now))

    def list_active(self) -> Sequence[PlanMeta]:
        with self.store.transaction() as tx:
            return list(tx.list_plans(active_only=True))

    def list_all(self) -> Sequence[PlanMeta]:
        with self.store.transaction() as tx:
            return list(tx.list_plans())

    def get(self, name: Union[str, PlanName]) -> PlanMeta:
        plan_name = _plan_name(name)
        with self.store.transaction() as tx:
            return _load_plan(tx, plan_name)

    def create(self, admin: Principal, payload: PlanCreate) -> PlanMeta:
        require_admin(admin)
        plan_name = _plan_name(payload.name)
        now = self._now()
        with self.store.transaction() as tx:
            if tx.get_plan(plan_name) is not None:
                raise ConflictError(f"Plan {plan_name.value} already exists", detail={"plan": plan_name.value})
            plan = tx.insert_plan(
                PlanMeta(
                    name=plan_name,
                    label=payload.label,
                    description=payload.description,
                    price=payload.price,
                    duration_days=payload.duration_days,
                    features=dict(payload.features),
                    is_active=payload.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
            self._audit(tx, admin, AdminAction.PLAN_CREATED, f"Created plan {plan_name.value}", now)
        logger.info("Plan created", extra={"plan": plan_name.value, "admin_id": admin.id})
        return plan

    def update(self, admin: Principal, name: Union[str, PlanName], payload: PlanUpdate) -> PlanMeta:
        """Apply a partial update, optionally renaming the plan.

        Renaming to the plan's own name is ignored; renaming onto a name held
        by another row raises :class:`ConflictError`.
        """

        require_admin(admin)
        plan_name = _plan_name(name)
        changes: Dict[str, object] = payload.changes()
        target = _plan_name(payload.rename_to) if payload.rename_to else plan_name
        now = self._now()

        with self.store.transaction() as tx:
            _load_plan(tx, plan_name)
            if target != plan_name:
                if tx.get_plan(target) is not None:
                    raise ConflictError(
                        f"Plan {target.value} already exists",
                        detail={"plan": target.value},
                    )
                changes["name"] = target
            plan = tx.update_plan(plan_name, changes)
            note = f"Updated plan {plan_name.value}"
            if target != plan_name:
                note += f" (renamed to {target.value})"
            self._audit(tx, admin, AdminAction.PLAN_UPDATED, note, now)
        logger.info(
            "Plan updated",
            extra={"plan": plan_name.value, "renamed_to": target.value, "admin_id": admin.id},
        )
        return plan

    def toggle(self, admin: Principal, name: Union[str, PlanName], is_active: bool) -> PlanMeta:
        require_admin(admin)
        plan_name = _plan_name(name)
        now = self._now()
        with self.store.transaction() as tx:
            _load_plan(tx, plan_name)
            plan = tx.update_plan(plan_name, {"is_active": bool(is_active)})
            state = "activated" if is_active else "deactivated"
            self._audit(tx, admin, AdminAction.PLAN_TOGGLED, f"Plan {plan_name.value} {state}", now)
        logger.info("Plan toggled", extra={"plan": plan_name.value, "is_active": bool(is_active)})
        return plan

    def delete(self, admin: Principal, name: Union[str, PlanName]) -> PlanMeta:
        """Hard-delete a plan row. Existing grants keep their snapshots."""

        require_admin(admin)
        plan_name = _plan_name(name)
        now = self._now()
        with self.store.transaction() as tx:
            plan = _load_plan(tx, plan_name)
            tx.delete_plan(plan_name)
            self._audit(tx, admin, AdminAction.PLAN_DELETED, f"Deleted plan {plan_name.value}", now)
        logger.info("Plan deleted", extra={"plan": plan_name.value, "admin_id": admin.id})
        return plan

    def attach_file(
        self,
        admin: Principal,
        name: Union[str, PlanName],
        slot: Union[str, PlanFileSlot],
        path: str,
        original_name: Optional[str] = None,
    ) -> PlanMeta:
        require_admin(admin)
        plan_name = _plan_name(name)
        file_slot = _slot(slot)
        if not path or not path.strip():
            raise ValidationError("A file path is required.")
        now = self._now()
        plan_file = PlanFile(path=path.strip(), original_name=original_name, updated_at=now)
        with self.store.transaction() as tx:
            _load_plan(tx, plan_name)
            plan = tx.update_plan(plan_name, {f"file_{file_slot.value.lower()}": plan_file})
            self._audit(
                tx,
                admin,
                AdminAction.PLAN_FILE_UPLOADED,
                f"Uploaded file {file_slot.value} for plan {plan_name.value}: {original_name or path}",
                now,
            )
        return plan

    def clear_file(
        self,
        admin: Principal,
        name: Union[str, PlanName],
        slot: Union[str, PlanFileSlot],
    ) -> PlanMeta:
        require_admin(admin)
        plan_name = _plan_name(name)
        file_slot = _slot(slot)
        now = self._now()
        with self.store.transaction() as tx:
            _load_plan(tx, plan_name)
            plan = tx.update_plan(plan_name, {f"file_{file_slot.value.lower()}": None})
            self._audit(
                tx,
                admin,
                AdminAction.PLAN_FILE_CLEARED,
                f"Cleared file {file_slot.value} for plan {plan_name.value}",
                now,
            )
        return plan


__all__ = ["PlanCatalogService"]
