"""Application settings and environment loading utilities."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from formguard.tiers import (
    DEFAULT_EMAIL_TIER,
    DEFAULT_IP_TIERS,
    ConfigurationError,
    Tier,
    validate_tiers,
    validate_window,
)
from formguard.verdict import LimitType


def _load_dotenv() -> None:
    env_path = Path(".env")
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


_load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_tiers(raw: str) -> Tuple[Tier, ...]:
    """Parse ``label:window_ms:max_requests`` entries separated by commas."""

    tiers = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [part.strip() for part in chunk.split(":")]
        if len(parts) != 3:
            raise ConfigurationError(f"Invalid tier definition: {chunk!r}")
        label, window, max_requests = parts
        try:
            tier = Tier(
                window_ms=int(window),
                max_requests=int(max_requests),
                label=LimitType(label.lower()),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid tier definition: {chunk!r}") from exc
        tiers.append(tier)
    return validate_tiers(tiers)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration derived from environment variables."""

    ip_tiers: Tuple[Tier, ...] = field(default=DEFAULT_IP_TIERS)
    email_max_requests: int = DEFAULT_EMAIL_TIER.max_requests
    email_window_ms: int = DEFAULT_EMAIL_TIER.window_ms
    sweep_interval_seconds: float = 60 * 60
    store_shards: int = 16
    trust_proxy_headers: bool = True
    admin_token: Optional[str] = None
    recaptcha_secret_key: Optional[str] = None
    recaptcha_min_score: float = 0.5
    environment: str = "production"

    def __post_init__(self) -> None:
        validate_tiers(self.ip_tiers)
        validate_window(self.email_window_ms, self.email_max_requests, "email tier")
        if self.sweep_interval_seconds <= 0:
            raise ConfigurationError("sweep_interval_seconds must be positive")
        if self.store_shards <= 0:
            raise ConfigurationError("store_shards must be positive")
        if not 0.0 <= self.recaptcha_min_score <= 1.0:
            raise ConfigurationError("recaptcha_min_score must be between 0.0 and 1.0")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        raw_tiers = os.getenv("FORMGUARD_IP_TIERS")
        ip_tiers = parse_tiers(raw_tiers) if raw_tiers else DEFAULT_IP_TIERS

        return cls(
            ip_tiers=ip_tiers,
            email_max_requests=_int_env(
                "FORMGUARD_EMAIL_MAX_REQUESTS", DEFAULT_EMAIL_TIER.max_requests
            ),
            email_window_ms=_int_env("FORMGUARD_EMAIL_WINDOW_MS", DEFAULT_EMAIL_TIER.window_ms),
            sweep_interval_seconds=_float_env("FORMGUARD_SWEEP_INTERVAL_SECONDS", 60 * 60),
            store_shards=_int_env("FORMGUARD_STORE_SHARDS", 16),
            trust_proxy_headers=_bool_env("FORMGUARD_TRUST_PROXY_HEADERS", True),
            admin_token=os.getenv("FORMGUARD_ADMIN_TOKEN") or None,
            recaptcha_secret_key=os.getenv("RECAPTCHA_SECRET_KEY") or None,
            recaptcha_min_score=_float_env("RECAPTCHA_MIN_SCORE", 0.5),
            environment=os.getenv("FORMGUARD_ENV", "production"),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings.from_env()
