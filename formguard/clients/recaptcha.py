"""Google reCAPTCHA siteverify client."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from requests import Response

LOGGER = logging.getLogger(__name__)

VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class RecaptchaError(RuntimeError):
    """Raised when the siteverify endpoint cannot be used."""


@dataclass
class RecaptchaResult:
    """Outcome of a token verification."""

    success: bool
    score: Optional[float] = None
    action: Optional[str] = None
    hostname: Optional[str] = None
    challenge_ts: Optional[str] = None
    error_codes: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, **fields: Any) -> "RecaptchaResult":
        return cls(success=False, error=error, **fields)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RecaptchaResult":
        score = payload.get("score")
        return cls(
            success=bool(payload.get("success")),
            score=float(score) if isinstance(score, (int, float)) else None,
            action=payload.get("action"),
            hostname=payload.get("hostname"),
            challenge_ts=payload.get("challenge_ts"),
            error_codes=list(payload.get("error-codes") or []),
        )


class RecaptchaVerifier:
    """Verify reCAPTCHA v2/v3 tokens with score and action checks."""

    def __init__(
        self,
        secret_key: Optional[str],
        *,
        min_score: float = 0.5,
        verify_url: str = VERIFY_URL,
        session: Optional[requests.Session] = None,
        allow_in_development: bool = False,
        environment: str = "production",
        timeout: float = 10,
    ) -> None:
        self._secret_key = secret_key
        self._min_score = min_score
        self._verify_url = verify_url
        self._session = session or requests.Session()
        self._allow_in_development = allow_in_development
        self._environment = environment
        self._timeout = timeout

    def is_valid(
        self, token: Optional[str], action: Optional[str] = None, min_score: Optional[float] = None
    ) -> bool:
        return self.verify(token, action=action, min_score=min_score).success

    def verify(
        self, token: Optional[str], action: Optional[str] = None, min_score: Optional[float] = None
    ) -> RecaptchaResult:
        """Verify ``token``; failures are reported in the result, never raised."""

        if self._allow_in_development and self._environment.lower() == "development":
            return RecaptchaResult(
                success=True,
                score=1.0,
                action=action or "development_bypass",
                hostname="localhost",
            )
        if not token:
            return RecaptchaResult.failure("Missing reCAPTCHA token")
        if not self._secret_key:
            return RecaptchaResult.failure("Missing reCAPTCHA secret key")

        threshold = self._min_score if min_score is None else min_score
        try:
            response = self._session.post(
                self._verify_url,
                data={"secret": self._secret_key, "response": token},
                timeout=self._timeout,
            )
            self._raise_for_status(response)
            payload = response.json()
        except (requests.RequestException, RecaptchaError, ValueError) as exc:
            LOGGER.warning("reCAPTCHA verification failed", extra={"detail": str(exc)})
            return RecaptchaResult.failure(str(exc) or "Unknown verification error")

        result = RecaptchaResult.from_payload(payload)
        if not result.success:
            result.error = ", ".join(result.error_codes) or "Verification failed"
            return result
        if result.score is not None and result.score < threshold:
            result.success = False
            result.error = f"Score {result.score} is below minimum threshold {threshold}"
            return result
        if action and result.action != action:
            result.success = False
            result.error = f"Action mismatch: expected '{action}', got '{result.action}'"
            return result
        return result

    def _raise_for_status(self, response: Response) -> None:
        if response.ok:
            return
        LOGGER.error("reCAPTCHA request failed", extra={"status": response.status_code})
        raise RecaptchaError(f"reCAPTCHA API returned status {response.status_code}")
