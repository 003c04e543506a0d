"""Application wiring for the membership services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..config import MembershipConfig, load_membership_config
from ..entitlements import EntitlementService
from ..jobs import ExpirySweeper, InMemoryJobRepository, JobQueue, JobRepository, JobType
from ..membership import (
    AccountService,
    ApprovalEngine,
    BcryptPasswordHasher,
    GrantStore,
    InMemoryMembershipStore,
    MembershipStore,
    Submission,
    SubmissionLedger,
    SubmissionNotifier,
    User,
)
from ..plans.service import PlanCatalogService

logger = logging.getLogger("membership")


class LoggingSubmissionNotifier(SubmissionNotifier):
    """Mirrors new payment submissions to the application logger."""

    def notify_new_submission(self, submission: Submission, user: User) -> None:
        logger.info(
            "New payment proof submission=%s user=%s email=%s plan=%s method=%s",
            submission.id,
            user.id,
            user.email,
            submission.plan.value,
            submission.payment_method.value,
        )


@lru_cache(maxsize=1)
def get_membership_config() -> MembershipConfig:
    return load_membership_config()


@lru_cache(maxsize=1)
def get_membership_store() -> MembershipStore:
    config = get_membership_config()
    if config.storage == "memory":
        logger.warning("Using the in-memory membership store; data is lost on restart")
        return InMemoryMembershipStore()
    from ..membership.repository import PostgresMembershipStore

    return PostgresMembershipStore()


@lru_cache(maxsize=1)
def get_job_repository() -> JobRepository:
    if get_membership_config().storage == "memory":
        return InMemoryJobRepository()
    from ..jobs.repository import PostgresJobRepository

    return PostgresJobRepository()


@lru_cache(maxsize=1)
def get_submission_ledger() -> SubmissionLedger:
    return SubmissionLedger(
        store=get_membership_store(),
        notifier=LoggingSubmissionNotifier(),
        pending_limit=get_membership_config().pending_queue_limit,
    )


@lru_cache(maxsize=1)
def get_approval_engine() -> ApprovalEngine:
    return ApprovalEngine(store=get_membership_store())


@lru_cache(maxsize=1)
def get_grant_store() -> GrantStore:
    return GrantStore(store=get_membership_store())


@lru_cache(maxsize=1)
def get_account_service() -> AccountService:
    return AccountService(
        store=get_membership_store(),
        hasher=BcryptPasswordHasher(),
        first_user_number=get_membership_config().first_user_number,
    )


@lru_cache(maxsize=1)
def get_plan_catalog_service() -> PlanCatalogService:
    return PlanCatalogService(store=get_membership_store())


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    return EntitlementService(get_membership_store())


@lru_cache(maxsize=1)
def get_expiry_sweeper() -> ExpirySweeper:
    return ExpirySweeper(get_membership_store())


@lru_cache(maxsize=1)
def get_job_queue() -> JobQueue:
    sweeper = get_expiry_sweeper()
    return JobQueue(
        get_job_repository(),
        {JobType.EXPIRE_ACCESS: sweeper.sweep},
        stale_after=get_membership_config().job_stale_after,
    )


_FACTORIES = (
    get_membership_config,
    get_membership_store,
    get_job_repository,
    get_submission_ledger,
    get_approval_engine,
    get_grant_store,
    get_account_service,
    get_plan_catalog_service,
    get_entitlement_service,
    get_expiry_sweeper,
    get_job_queue,
)


def reset_membership_services() -> None:
    """Drop cached service instances so the next call rebuilds them."""

    for factory in _FACTORIES:
        factory.cache_clear()


__all__ = [
    "LoggingSubmissionNotifier",
    "get_account_service",
    "get_approval_engine",
    "get_entitlement_service",
    "get_expiry_sweeper",
    "get_grant_store",
    "get_job_queue",
    "get_job_repository",
    "get_membership_config",
    "get_membership_store",
    "get_plan_catalog_service",
    "get_submission_ledger",
    "reset_membership_services",
]
