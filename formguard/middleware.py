"""FastAPI/Starlette integration for the rate limiting engine."""
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import Request
from fastapi.responses import JSONResponse

from formguard.engine import DEFAULT_FORM_TYPE, FormRateLimitOptions, RateLimitEngine
from formguard.tiers import validate_window
from formguard.utils import UNKNOWN_IP, get_client_ip
from formguard.verdict import Verdict

DEFAULT_RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."

Getter = Callable[[Request], Union[Optional[str], Awaitable[Optional[str]]]]


async def _resolve(getter: Getter, request: Request) -> Optional[str]:
    value = getter(request)
    if inspect.isawaitable(value):
        value = await value
    return value


def client_address(request: Request, trust_proxy_headers: bool = True) -> str:
    """Identify the caller from proxy headers or the socket peer."""

    if trust_proxy_headers:
        ip = get_client_ip(request.headers)
        if ip != UNKNOWN_IP:
            return ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IP


def create_rate_limiter(
    engine: RateLimitEngine,
    *,
    get_identifier: Optional[Getter] = None,
    get_email: Optional[Getter] = None,
    form_type: str = DEFAULT_FORM_TYPE,
    max_requests: Optional[int] = None,
    window_ms: Optional[int] = None,
    message: Optional[str] = None,
) -> Callable[[Request], Awaitable[Verdict]]:
    """Return an async callable that rate limits a request for ``form_type``.

    ``get_identifier`` and ``get_email`` may be plain or async functions. By
    default the identifier is the client address and no email is tracked.
    """

    if max_requests is not None or window_ms is not None:
        validate_window(
            window_ms if window_ms is not None else engine.email_tier.window_ms,
            max_requests if max_requests is not None else engine.email_tier.max_requests,
            f"{form_type} rate limiter",
        )
    options = FormRateLimitOptions(max_requests=max_requests, window_ms=window_ms, message=message)
    identifier_getter = get_identifier or client_address

    async def limiter(request: Request) -> Verdict:
        identifier = await _resolve(identifier_getter, request)
        email = await _resolve(get_email, request) if get_email else None
        return engine.check_form_submission(identifier, email, form_type, options)

    return limiter


def rate_limit_response(verdict: Verdict, message: Optional[str] = None) -> JSONResponse:
    """Map a deny verdict onto an HTTP 429 response with ``Retry-After``."""

    body: dict[str, Any] = {"error": message or verdict.message or DEFAULT_RATE_LIMIT_MESSAGE}
    body.update(verdict.to_dict())
    headers = {}
    if verdict.retry_after_seconds is not None:
        headers["Retry-After"] = str(verdict.retry_after_seconds)
    return JSONResponse(status_code=429, content=body, headers=headers)
