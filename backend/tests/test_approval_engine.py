from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import timedelta

import pytest

from backend.app.membership import (
    AdminAction,
    ApprovalEngine,
    ApprovalStatus,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PaymentMethod,
    PaymentStatus,
    ProofReference,
    SubmissionStatus,
    UnauthorizedError,
    ValidationError,
)
from backend.app.plans.models import PlanName


class StaleReadTransaction:
    """Serves a stale PENDING copy on the first read of a submission, as a racing reader would."""

    def __init__(self, inner, stale):
        self._inner = inner
        self._stale = stale

    def get_submission(self, submission_id):
        if submission_id in self._stale:
            return self._stale.pop(submission_id)
        return self._inner.get_submission(submission_id)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class StaleReadStore:
    def __init__(self, inner):
        self._inner = inner
        self.stale = {}

    @contextmanager
    def transaction(self):
        with self._inner.transaction() as tx:
            yield StaleReadTransaction(tx, self.stale)


def _submit(ledger, user, plan=PlanName.BASIC, proof=None):
    return ledger.create_submission(
        user.id,
        plan,
        PaymentMethod.BANK_TRANSFER,
        proof or ProofReference(path=f"uploads/{user.id}.png"),
    )


def test_approve_grants_plan_snapshot(ledger, engine, store, admin, plans, make_user, clock):
    user = make_user()
    submission = _submit(ledger, user)

    result = engine.approve(submission.id, admin, note="Looks good")

    assert result.access_expires_at == clock() + timedelta(days=30)
    assert result.submission.status == SubmissionStatus.APPROVED
    assert result.submission.reviewed_by_id == admin.id
    assert result.submission.admin_note == "Looks good"
    assert result.grant.plan == PlanName.BASIC
    assert result.grant.price_snapshot == 100000
    assert result.grant.features_snapshot == plans[PlanName.BASIC].features

    with store.transaction() as tx:
        stored = tx.get_user(user.id)
        logs = tx.list_admin_logs()
    assert stored.approval_status == ApprovalStatus.APPROVED
    assert stored.payment_status == PaymentStatus.COMPLETED
    assert stored.access_expires_at == result.access_expires_at
    assert logs[-1].action == AdminAction.SUBMISSION_APPROVED
    assert logs[-1].submission_id == submission.id


def test_approve_requires_admin(ledger, engine, member, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)

    with pytest.raises(UnauthorizedError):
        engine.approve(submission.id, member)


def test_approve_missing_submission(engine, admin):
    with pytest.raises(NotFoundError):
        engine.approve(4242, admin)


def test_approve_twice_raises_invalid_state(ledger, engine, store, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)
    engine.approve(submission.id, admin)

    with pytest.raises(InvalidStateError) as exc_info:
        engine.approve(submission.id, admin)

    assert exc_info.value.status_code == 409
    with store.transaction() as tx:
        assert len(tx.list_grants(submission_id=submission.id)) == 1


def test_approve_inactive_plan_rolls_back(ledger, engine, store, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user, PlanName.PRO)
    with store.transaction() as tx:
        tx.update_plan(PlanName.PRO, {"is_active": False})

    with pytest.raises(ValidationError):
        engine.approve(submission.id, admin)

    with store.transaction() as tx:
        assert tx.get_submission(submission.id).status == SubmissionStatus.PENDING
        assert tx.list_grants(user_id=user.id) == []
        assert tx.get_user(user.id).approval_status == ApprovalStatus.PENDING


def test_concurrent_approvals_produce_one_grant(ledger, engine, store, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def approve():
        barrier.wait()
        try:
            outcome = engine.approve(submission.id, admin)
        except ConflictError as exc:
            outcome = exc
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=approve) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, ConflictError)]
    assert len(successes) == 1
    assert len(failures) == 1
    with store.transaction() as tx:
        assert len(tx.list_grants(submission_id=submission.id)) == 1


def test_lost_conditional_update_raises_conflict(ledger, engine, store, admin, plans, make_user, clock):
    user = make_user()
    submission = _submit(ledger, user)
    engine.approve(submission.id, admin)

    racing_store = StaleReadStore(store)
    racing_store.stale[submission.id] = submission
    racing_engine = ApprovalEngine(store=racing_store, clock=clock)

    with pytest.raises(ConflictError) as exc_info:
        racing_engine.approve(submission.id, admin)

    assert not isinstance(exc_info.value, InvalidStateError)
    with store.transaction() as tx:
        assert len(tx.list_grants(submission_id=submission.id)) == 1


def test_reject_resets_status_cache(ledger, engine, store, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)

    rejected = engine.reject(submission.id, admin)

    assert rejected.status == SubmissionStatus.REJECTED
    assert rejected.reviewed_by_id == admin.id
    with store.transaction() as tx:
        stored = tx.get_user(user.id)
        logs = tx.list_admin_logs()
    assert stored.approval_status == ApprovalStatus.NONE
    assert stored.payment_status == PaymentStatus.NONE
    assert [log.action for log in logs] == [AdminAction.SUBMISSION_REJECTED]


def test_reject_is_idempotent(ledger, engine, store, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)
    engine.reject(submission.id, admin)

    again = engine.reject(submission.id, admin)

    assert again.status == SubmissionStatus.REJECTED
    with store.transaction() as tx:
        logs = tx.list_admin_logs()
    assert len(logs) == 1


def test_reject_after_approve_is_invalid(ledger, engine, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)
    engine.approve(submission.id, admin)

    with pytest.raises(InvalidStateError):
        engine.reject(submission.id, admin)


def test_approve_after_reject_is_invalid(ledger, engine, admin, plans, make_user):
    user = make_user()
    submission = _submit(ledger, user)
    engine.reject(submission.id, admin)

    with pytest.raises(InvalidStateError):
        engine.approve(submission.id, admin)


def test_lost_reject_race_rereads_rejected_submission(ledger, engine, store, admin, plans, make_user, clock):
    user = make_user()
    submission = _submit(ledger, user)
    engine.reject(submission.id, admin)

    racing_store = StaleReadStore(store)
    racing_store.stale[submission.id] = submission
    racing_engine = ApprovalEngine(store=racing_store, clock=clock)

    result = racing_engine.reject(submission.id, admin)

    assert result.status == SubmissionStatus.REJECTED
    with store.transaction() as tx:
        assert len(tx.list_admin_logs()) == 1


def test_rejected_user_can_submit_again(ledger, engine, admin, plans, make_user):
    user = make_user()
    first = _submit(ledger, user)
    engine.reject(first.id, admin)

    second = _submit(ledger, user, PlanName.PRO)

    assert second.status == SubmissionStatus.PENDING
    assert ledger.latest_for_user(user.id).id == second.id


def test_rejecting_renewal_keeps_running_grant(ledger, engine, store, admin, plans, make_user, clock):
    user = make_user()
    first = _submit(ledger, user)
    approved = engine.approve(first.id, admin)
    clock.advance(days=10)

    renewal = _submit(ledger, user, PlanName.PRO)
    engine.reject(renewal.id, admin)

    with store.transaction() as tx:
        stored = tx.get_user(user.id)
    assert stored.approval_status == ApprovalStatus.APPROVED
    assert stored.payment_status == PaymentStatus.COMPLETED
    assert stored.access_expires_at == approved.access_expires_at


def test_rejecting_renewal_after_lapse_clears_expiry(ledger, engine, store, admin, plans, make_user, clock):
    user = make_user()
    engine.approve(_submit(ledger, user).id, admin)
    clock.advance(days=31)

    renewal = _submit(ledger, user, PlanName.PRO)
    engine.reject(renewal.id, admin)

    with store.transaction() as tx:
        stored = tx.get_user(user.id)
    assert stored.approval_status == ApprovalStatus.NONE
    assert stored.payment_status == PaymentStatus.NONE
    assert stored.access_expires_at is None


def test_renewal_approval_starts_from_now(ledger, engine, store, admin, plans, make_user, clock):
    user = make_user()
    engine.approve(_submit(ledger, user).id, admin)
    clock.advance(days=10)

    result = engine.approve(_submit(ledger, user, PlanName.PRO).id, admin)

    assert result.access_expires_at == clock() + timedelta(days=90)
    with store.transaction() as tx:
        assert tx.active_grant(user.id, clock()).plan == PlanName.PRO
        assert len(tx.list_grants(user_id=user.id)) == 2
