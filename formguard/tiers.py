"""Tier definitions and the sliding-window tier evaluator."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from formguard.messages import DEFAULT_MESSAGES, render
from formguard.verdict import LimitType, Verdict

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


class ConfigurationError(ValueError):
    """Raised when limiter settings cannot produce a working configuration."""


@dataclass(frozen=True)
class Tier:
    """One sliding-window rule: at most ``max_requests`` per ``window_ms``."""

    window_ms: int
    max_requests: int
    label: LimitType


DEFAULT_IP_TIERS: Tuple[Tier, ...] = (
    Tier(window_ms=MINUTE_MS, max_requests=5, label=LimitType.SHORT),
    Tier(window_ms=10 * MINUTE_MS, max_requests=15, label=LimitType.MEDIUM),
    Tier(window_ms=HOUR_MS, max_requests=30, label=LimitType.LONG),
)

DEFAULT_EMAIL_TIER = Tier(window_ms=HOUR_MS, max_requests=3, label=LimitType.EMAIL)


def validate_window(window_ms: int, max_requests: int, name: str) -> None:
    """Reject non-positive windows and maxima."""

    if isinstance(window_ms, bool) or not isinstance(window_ms, int) or window_ms <= 0:
        raise ConfigurationError(f"{name}: window_ms must be a positive integer, got {window_ms!r}")
    if isinstance(max_requests, bool) or not isinstance(max_requests, int) or max_requests <= 0:
        raise ConfigurationError(
            f"{name}: max_requests must be a positive integer, got {max_requests!r}"
        )


def validate_tiers(tiers: Iterable[Tier]) -> Tuple[Tier, ...]:
    """Validate IP tiers and return them sorted by ascending window."""

    ordered = tuple(sorted(tiers, key=lambda tier: tier.window_ms))
    if not ordered:
        raise ConfigurationError("At least one IP tier is required")
    seen = set()
    for tier in ordered:
        if not isinstance(tier.label, LimitType) or tier.label is LimitType.EMAIL:
            raise ConfigurationError(f"Invalid IP tier label: {tier.label!r}")
        if tier.label in seen:
            raise ConfigurationError(f"Duplicate IP tier label: {tier.label.value}")
        seen.add(tier.label)
        validate_window(tier.window_ms, tier.max_requests, f"{tier.label.value} tier")
    return ordered


def count_in_window(timestamps: Sequence[int], now: int, window_ms: int) -> int:
    return sum(1 for ts in timestamps if now - ts < window_ms)


def retry_after_seconds(timestamps: Sequence[int], now: int, window_ms: int) -> int:
    """Seconds until the oldest timestamp inside the window slides out, rounded up."""

    in_window = [ts for ts in timestamps if now - ts < window_ms]
    if not in_window:
        return 1
    oldest = min(in_window)
    return max(1, math.ceil((window_ms - (now - oldest)) / 1000))


def evaluate(
    timestamps: Sequence[int],
    now: int,
    tiers: Sequence[Tier],
    messages: Optional[Mapping[str, str]] = None,
) -> Verdict:
    """Check ``timestamps`` against each tier, shortest window first.

    A count equal to the tier maximum is still allowed. The first tier whose
    count is strictly greater than its maximum decides the verdict.
    """

    templates = messages or DEFAULT_MESSAGES
    ordered: List[Tier] = sorted(tiers, key=lambda tier: tier.window_ms)
    for tier in ordered:
        if count_in_window(timestamps, now, tier.window_ms) <= tier.max_requests:
            continue
        retry_after = retry_after_seconds(timestamps, now, tier.window_ms)
        template = templates.get(tier.label.value, DEFAULT_MESSAGES[tier.label.value])
        return Verdict.deny(
            retry_after_seconds=retry_after,
            limit_type=tier.label,
            message=render(template, retry_after),
            window_ms=tier.window_ms,
            max_requests=tier.max_requests,
        )
    return Verdict.allow()
