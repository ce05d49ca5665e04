from __future__ import annotations

import pytest

from formguard.config import Settings, parse_tiers
from formguard.engine import RateLimitEngine
from formguard.tiers import DEFAULT_IP_TIERS, ConfigurationError
from formguard.verdict import LimitType


def test_defaults_when_environment_is_empty(monkeypatch):
    for name in (
        "FORMGUARD_IP_TIERS",
        "FORMGUARD_EMAIL_MAX_REQUESTS",
        "FORMGUARD_EMAIL_WINDOW_MS",
        "FORMGUARD_ADMIN_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.ip_tiers == DEFAULT_IP_TIERS
    assert settings.email_max_requests == 3
    assert settings.email_window_ms == 3_600_000
    assert settings.admin_token is None


def test_tiers_and_email_limits_from_env(monkeypatch):
    monkeypatch.setenv("FORMGUARD_IP_TIERS", "long:3600000:100, short:60000:10,medium:300000:30")
    monkeypatch.setenv("FORMGUARD_EMAIL_MAX_REQUESTS", "5")
    monkeypatch.setenv("FORMGUARD_SWEEP_INTERVAL_SECONDS", "300")
    monkeypatch.setenv("FORMGUARD_TRUST_PROXY_HEADERS", "no")

    settings = Settings.from_env()

    assert [tier.label for tier in settings.ip_tiers] == [
        LimitType.SHORT,
        LimitType.MEDIUM,
        LimitType.LONG,
    ]
    assert settings.ip_tiers[0].max_requests == 10
    assert settings.email_max_requests == 5
    assert settings.sweep_interval_seconds == 300
    assert settings.trust_proxy_headers is False


def test_engine_from_settings_uses_configured_tiers():
    settings = Settings(ip_tiers=parse_tiers("short:1000:1"), email_max_requests=2)
    engine = RateLimitEngine.from_settings(settings, autostart=False, clock=lambda: 0)

    assert engine.check_request("ip").allowed
    assert engine.check_request("ip").limit_type is LimitType.SHORT
    assert engine.email_tier.max_requests == 2


@pytest.mark.parametrize(
    "raw",
    ["short:60000", "short:abc:5", "hourly:60000:5", "email:60000:5", "short:0:5", ","],
)
def test_malformed_tiers_are_rejected(raw):
    with pytest.raises(ConfigurationError):
        parse_tiers(raw)


def test_non_integer_env_value_is_rejected(monkeypatch):
    monkeypatch.setenv("FORMGUARD_EMAIL_MAX_REQUESTS", "three")
    with pytest.raises(ConfigurationError):
        Settings.from_env()


def test_invalid_settings_fail_fast():
    with pytest.raises(ConfigurationError):
        Settings(email_window_ms=0)
    with pytest.raises(ConfigurationError):
        Settings(recaptcha_min_score=1.5)
