"""Multi-tier sliding-window rate limiting engine for form submissions."""
from __future__ import annotations

import logging
import threading
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Mapping, Optional

from formguard.messages import email_template_key, merge_messages, render
from formguard.store import WindowStore
from formguard.sweeper import PeriodicSweeper
from formguard.tiers import (
    DEFAULT_EMAIL_TIER,
    DEFAULT_IP_TIERS,
    Tier,
    count_in_window,
    evaluate,
    retry_after_seconds,
    validate_tiers,
    validate_window,
)
from formguard.utils import now_ms
from formguard.verdict import LimitType, Verdict

if TYPE_CHECKING:
    from formguard.config import Settings

LOGGER = logging.getLogger(__name__)

DEFAULT_FORM_TYPE = "contact"
DEFAULT_SWEEP_INTERVAL_SECONDS = 60 * 60


@dataclass(frozen=True)
class FormRateLimitOptions:
    """Per-call overrides for the email tier."""

    max_requests: Optional[int] = None
    window_ms: Optional[int] = None
    message: Optional[str] = None
    skip_ip_check: bool = False


@dataclass(frozen=True)
class RateLimitStats:
    """Current window occupancy for one identifier plus store sizes."""

    window_counts: Dict[str, int] = field(default_factory=dict)
    ip_entries: int = 0
    email_entries: int = 0

    @property
    def short_window_count(self) -> int:
        return self.window_counts.get(LimitType.SHORT.value, 0)

    @property
    def medium_window_count(self) -> int:
        return self.window_counts.get(LimitType.MEDIUM.value, 0)

    @property
    def long_window_count(self) -> int:
        return self.window_counts.get(LimitType.LONG.value, 0)

    def to_dict(self) -> Dict[str, int]:
        payload = {f"{label}WindowCount": count for label, count in self.window_counts.items()}
        payload["ipEntries"] = self.ip_entries
        payload["emailEntries"] = self.email_entries
        return payload


def email_key(email: str, form_type: str) -> str:
    """Build the email store key; emails are compared case-insensitively."""

    return f"email:{email.strip().lower()}:{form_type}"


def drop_expired(timestamps: List[int], cutoff: int) -> None:
    """Remove timestamps at or before ``cutoff`` from an append-ordered record."""

    expired = bisect_right(timestamps, cutoff)
    if expired:
        del timestamps[:expired]


class RateLimitEngine:
    """Track request timestamps per IP and per email and decide allow/deny.

    IP requests are checked against every configured tier in ascending window
    order. Form submissions that carry an email address are additionally
    checked against a separate email tier keyed by ``email:<email>:<form>``.
    Expired entries are evicted by a background sweeper, which the engine owns
    and which must be stopped with :meth:`stop` on shutdown.
    """

    def __init__(
        self,
        ip_tiers: Iterable[Tier] = DEFAULT_IP_TIERS,
        email_tier: Tier = DEFAULT_EMAIL_TIER,
        *,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        shards: int = 16,
        clock: Callable[[], int] = now_ms,
        messages: Optional[Mapping[str, str]] = None,
        autostart: bool = True,
    ) -> None:
        self._ip_tiers = validate_tiers(ip_tiers)
        validate_window(email_tier.window_ms, email_tier.max_requests, "email tier")
        self._email_tier = email_tier
        self._clock = clock
        self._messages = merge_messages(messages)
        self._ip_store = WindowStore(shards)
        self._email_store = WindowStore(shards)
        self._horizon_lock = threading.Lock()
        self._email_horizon_ms = email_tier.window_ms
        self._sweeper = PeriodicSweeper(self.sweep, sweep_interval_seconds)
        if autostart:
            self._sweeper.start()

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs) -> "RateLimitEngine":
        """Build an engine from application settings."""

        return cls(
            settings.ip_tiers,
            Tier(
                window_ms=settings.email_window_ms,
                max_requests=settings.email_max_requests,
                label=LimitType.EMAIL,
            ),
            sweep_interval_seconds=settings.sweep_interval_seconds,
            shards=settings.store_shards,
            **kwargs,
        )

    @property
    def ip_tiers(self) -> tuple:
        return self._ip_tiers

    @property
    def email_tier(self) -> Tier:
        return self._email_tier

    @property
    def sweeper(self) -> PeriodicSweeper:
        return self._sweeper

    def check_request(self, identifier: Optional[str], form_type: Optional[str] = None) -> Verdict:
        """Record a request for ``identifier`` and check it against the IP tiers."""

        if not identifier:
            LOGGER.debug("No identifier supplied, skipping rate limit")
            return Verdict.allow()

        now = self._clock()
        with self._ip_store.transaction((form_type, identifier)) as timestamps:
            drop_expired(timestamps, now - self._ip_tiers[-1].window_ms)
            timestamps.append(now)
            verdict = evaluate(timestamps, now, self._ip_tiers, self._messages)

        if not verdict.allowed:
            LOGGER.info(
                "IP rate limit exceeded",
                extra={
                    "identifier": identifier,
                    "limit_type": verdict.limit_type.value,
                    "retry_after": verdict.retry_after_seconds,
                },
            )
        return verdict

    def check_email_limit(
        self,
        email: Optional[str],
        form_type: str = DEFAULT_FORM_TYPE,
        options: Optional[FormRateLimitOptions] = None,
    ) -> Verdict:
        """Record a submission for ``email`` and check it against the email tier."""

        if not email or not email.strip():
            return Verdict.allow()

        options = options or FormRateLimitOptions()
        max_requests = (
            options.max_requests if options.max_requests is not None else self._email_tier.max_requests
        )
        window_ms = options.window_ms if options.window_ms is not None else self._email_tier.window_ms
        validate_window(window_ms, max_requests, "email limit")
        horizon_ms = self._extend_email_horizon(window_ms)

        now = self._clock()
        with self._email_store.transaction(email_key(email, form_type)) as timestamps:
            drop_expired(timestamps, now - horizon_ms)
            timestamps.append(now)
            if count_in_window(timestamps, now, window_ms) <= max_requests:
                return Verdict.allow()
            retry_after = retry_after_seconds(timestamps, now, window_ms)

        if options.message:
            message = options.message
        else:
            message = render(self._messages[email_template_key(retry_after)], retry_after)
        LOGGER.info(
            "Email rate limit exceeded",
            extra={"limit_type": LimitType.EMAIL.value, "retry_after": retry_after},
        )
        return Verdict.deny(
            retry_after_seconds=retry_after,
            limit_type=LimitType.EMAIL,
            message=message,
            window_ms=window_ms,
            max_requests=max_requests,
        )

    def check_form_submission(
        self,
        client_address: Optional[str],
        email: Optional[str] = None,
        form_type: str = DEFAULT_FORM_TYPE,
        options: Optional[FormRateLimitOptions] = None,
    ) -> Verdict:
        """Check the IP tiers for the form type, then the email tier."""

        options = options or FormRateLimitOptions()
        if not options.skip_ip_check and client_address:
            verdict = self.check_request(client_address, form_type)
            if not verdict.allowed:
                return verdict
        if email:
            return self.check_email_limit(email, form_type, options)
        return Verdict.allow()

    def _extend_email_horizon(self, window_ms: int) -> int:
        with self._horizon_lock:
            if window_ms > self._email_horizon_ms:
                self._email_horizon_ms = window_ms
            return self._email_horizon_ms

    def sweep(self) -> int:
        """Evict timestamps older than the longest window in use.

        Returns the number of identifiers removed from both stores.
        """

        now = self._clock()
        with self._horizon_lock:
            email_horizon = self._email_horizon_ms
        evicted = self._ip_store.prune(now - self._ip_tiers[-1].window_ms)
        evicted += self._email_store.prune(now - email_horizon)
        return evicted

    def stats(self, identifier: Optional[str], form_type: Optional[str] = None) -> RateLimitStats:
        """Report per-tier counts for ``identifier`` without recording anything."""

        ip_entries = len(self._ip_store)
        email_entries = len(self._email_store)
        if not identifier:
            counts = {tier.label.value: 0 for tier in self._ip_tiers}
        else:
            now = self._clock()
            timestamps = self._ip_store.get((form_type, identifier))
            counts = {
                tier.label.value: count_in_window(timestamps, now, tier.window_ms)
                for tier in self._ip_tiers
            }
        return RateLimitStats(window_counts=counts, ip_entries=ip_entries, email_entries=email_entries)

    def reset(self, identifier: Optional[str]) -> None:
        """Forget every record for ``identifier`` across form types.

        Identifiers containing ``@`` are treated as emails and also clear the
        matching email records.
        """

        if not identifier:
            return
        removed = self._ip_store.delete_where(lambda key: key[1] == identifier)
        if "@" in identifier:
            prefix = f"email:{identifier.strip().lower()}:"
            removed += self._email_store.delete_where(lambda key: key.startswith(prefix))
        LOGGER.info("Rate limits reset", extra={"identifier": identifier, "removed": removed})

    def clear_all(self) -> None:
        """Drop all rate limit state. Meant for test isolation."""

        self._ip_store.clear()
        self._email_store.clear()

    def restart_sweep_timer(self) -> None:
        self._sweeper.restart()

    def stop(self) -> None:
        """Stop the background sweeper."""

        self._sweeper.stop()

    def __enter__(self) -> "RateLimitEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
