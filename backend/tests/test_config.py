from __future__ import annotations

from datetime import timedelta

import pytest

from backend.app.config import load_membership_config


def test_defaults():
    config = load_membership_config({})

    assert config.storage == "postgres"
    assert config.scheduler_enabled is True
    assert (config.sweep_hour, config.sweep_minute) == (0, 0)
    assert config.job_stale_after == timedelta(minutes=30)
    assert config.first_user_number == 80000
    assert config.pending_queue_limit == 200


def test_overrides_are_parsed():
    config = load_membership_config(
        {
            "MEMBERSHIP_STORAGE": " Memory ",
            "EXPIRY_SCHEDULER_ENABLED": "off",
            "EXPIRY_SWEEP_HOUR": "3",
            "EXPIRY_SWEEP_MINUTE": "45",
            "JOB_STALE_AFTER_MINUTES": "10",
            "FIRST_USER_NUMBER": "1000",
            "PENDING_QUEUE_LIMIT": "",
        }
    )

    assert config.storage == "memory"
    assert config.scheduler_enabled is False
    assert (config.sweep_hour, config.sweep_minute) == (3, 45)
    assert config.job_stale_after == timedelta(minutes=10)
    assert config.first_user_number == 1000
    assert config.pending_queue_limit == 200


def test_unrecognized_boolean_falls_back_to_default():
    assert load_membership_config({"EXPIRY_SCHEDULER_ENABLED": "maybe"}).scheduler_enabled is True


@pytest.mark.parametrize(
    "env",
    [
        {"MEMBERSHIP_STORAGE": "redis"},
        {"EXPIRY_SWEEP_HOUR": "24"},
        {"EXPIRY_SWEEP_MINUTE": "-1"},
        {"JOB_STALE_AFTER_MINUTES": "0"},
        {"FIRST_USER_NUMBER": "abc"},
        {"PENDING_QUEUE_LIMIT": "0"},
    ],
)
def test_invalid_values_raise(env):
    with pytest.raises(ValueError):
        load_membership_config(env)
