"""Shared fixtures for the membership tests: an in-memory store and a movable clock."""
from __future__ import annotations

import pathlib
import sys
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.entitlements import DEFAULT_PLAN_FEATURES, EntitlementService
from backend.app.membership import (
    AccountService,
    ApprovalEngine,
    GrantStore,
    InMemoryMembershipStore,
    Principal,
    PrincipalRole,
    ProofReference,
    SubmissionLedger,
    User,
)
from backend.app.plans.models import PlanMeta, PlanName
from backend.app.plans.service import PlanCatalogService

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeHasher:
    def hash(self, password: str) -> str:
        return f"hashed:{password}"

    def verify(self, password: str, password_hash: str) -> bool:
        return password_hash == f"hashed:{password}"


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls = []

    def notify_new_submission(self, submission, user) -> None:
        self.calls.append((submission, user))


SEED = {
    PlanName.BASIC: ("Basic", 100000, 30),
    PlanName.PRO: ("Pro", 250000, 90),
    PlanName.VIP: ("VIP", 600000, 180),
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryMembershipStore:
    return InMemoryMembershipStore()


@pytest.fixture
def plans(store, clock):
    seeded = {}
    with store.transaction() as tx:
        for name, (label, price, duration_days) in SEED.items():
            seeded[name] = tx.insert_plan(
                PlanMeta(
                    name=name,
                    label=label,
                    price=price,
                    duration_days=duration_days,
                    features=dict(DEFAULT_PLAN_FEATURES[name]),
                    created_at=clock(),
                    updated_at=clock(),
                )
            )
    return seeded


@pytest.fixture
def admin() -> Principal:
    return Principal(id=1, role=PrincipalRole.ADMIN, email="admin@example.com")


@pytest.fixture
def member() -> Principal:
    return Principal(id=999, role=PrincipalRole.USER)


@pytest.fixture
def hasher() -> FakeHasher:
    return FakeHasher()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def accounts(store, hasher, clock) -> AccountService:
    return AccountService(store=store, hasher=hasher, clock=clock)


@pytest.fixture
def ledger(store, notifier, clock) -> SubmissionLedger:
    return SubmissionLedger(store=store, notifier=notifier, clock=clock)


@pytest.fixture
def engine(store, clock) -> ApprovalEngine:
    return ApprovalEngine(store=store, clock=clock)


@pytest.fixture
def grants(store, clock) -> GrantStore:
    return GrantStore(store=store, clock=clock)


@pytest.fixture
def catalog(store, clock) -> PlanCatalogService:
    return PlanCatalogService(store=store, clock=clock)


@pytest.fixture
def entitlements(store, clock) -> EntitlementService:
    return EntitlementService(store, clock=clock)


@pytest.fixture
def proof() -> ProofReference:
    return ProofReference(path="uploads/proof-1.png", original_name="receipt.png")


@pytest.fixture
def make_user(accounts) -> Callable[..., User]:
    counter = {"value": 0}

    def _make(email: Optional[str] = None, **kwargs) -> User:
        counter["value"] += 1
        address = email or f"user{counter['value']}@example.com"
        return accounts.register(address, "correct-horse", **kwargs)

    return _make
