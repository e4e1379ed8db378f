"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chat_notifier.config import Settings, get_settings, reset_settings_cache


def test_defaults_match_delivery_policy():
    settings = Settings(_env_file=None)

    assert settings.store_backend == "memory"
    assert settings.channel_max_retries == 3
    assert settings.channel_initial_delay_ms == 1000
    assert settings.channel_max_delay_ms == 30000
    assert settings.batch_max_entries == 50
    assert settings.task_thread_limit == 1000
    assert settings.always_immediate_types == ["task_assigned", "comment_mention"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "sqlalchemy")
    monkeypatch.setenv("NOTIFICATION_CONCURRENCY", "20")
    monkeypatch.setenv("ALWAYS_IMMEDIATE_TYPES", '["task_overdue"]')

    settings = Settings(_env_file=None)

    assert settings.store_backend == "sqlalchemy"
    assert settings.notification_concurrency == 20
    assert settings.always_immediate_types == ["task_overdue"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"store_backend": "redis"},
        {"batch_max_entries": 0},
        {"workspace_degraded_threshold": 5, "workspace_unhealthy_threshold": 4},
        {"channel_initial_delay_ms": 5000, "channel_max_delay_ms": 1000},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_settings_cache_can_be_reset(monkeypatch):
    reset_settings_cache()
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", "15")
    try:
        assert get_settings().sweep_interval_seconds == 15
        assert get_settings() is get_settings()
    finally:
        reset_settings_cache()
