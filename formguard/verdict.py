"""Rate limit verdicts returned by every evaluation call."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class LimitType(str, Enum):
    """Which rule produced a deny verdict."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    EMAIL = "email"


@dataclass(frozen=True)
class Verdict:
    """Allow/deny decision for a single request."""

    allowed: bool
    retry_after_seconds: Optional[int] = None
    limit_type: Optional[LimitType] = None
    message: Optional[str] = None
    window_ms: Optional[int] = None
    max_requests: Optional[int] = None

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(allowed=True)

    @classmethod
    def deny(
        cls,
        *,
        retry_after_seconds: int,
        limit_type: LimitType,
        message: str,
        window_ms: int,
        max_requests: int,
    ) -> "Verdict":
        return cls(
            allowed=False,
            retry_after_seconds=retry_after_seconds,
            limit_type=limit_type,
            message=message,
            window_ms=window_ms,
            max_requests=max_requests,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render the wire shape, omitting fields that are not set."""

        payload: Dict[str, Any] = {"allowed": self.allowed}
        if self.retry_after_seconds is not None:
            payload["retryAfter"] = self.retry_after_seconds
        if self.limit_type is not None:
            payload["limitType"] = self.limit_type.value
        if self.message is not None:
            payload["message"] = self.message
        if self.window_ms is not None:
            payload["windowMs"] = self.window_ms
        if self.max_requests is not None:
            payload["maxRequests"] = self.max_requests
        return payload
