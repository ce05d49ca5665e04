"""FastAPI service exposing rate-limited form endpoints and operator tooling."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from formguard.clients.recaptcha import RecaptchaVerifier
from formguard.config import Settings, get_settings
from formguard.engine import RateLimitEngine
from formguard.logging_config import configure_logging
from formguard.middleware import client_address, rate_limit_response

configure_logging()
LOGGER = logging.getLogger(__name__)

CONTACT_FORM_TYPE = "contact"
# Form endpoints are limited per form type before their body is parsed.
FORM_PATHS = {"/api/contact": CONTACT_FORM_TYPE}

settings = get_settings()
engine = RateLimitEngine.from_settings(settings, autostart=False)
recaptcha_verifier = RecaptchaVerifier(
    settings.recaptcha_secret_key,
    min_score=settings.recaptcha_min_score,
    allow_in_development=settings.is_development,
    environment=settings.environment,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine.restart_sweep_timer()
    yield
    engine.stop()


app = FastAPI(title="formguard", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ContactSubmission(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320)
    message: str = Field(min_length=1, max_length=5000)
    recaptcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")

    model_config = {"populate_by_name": True}

    @field_validator("email")
    @classmethod
    def _email_has_at(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("Invalid email address")
        return value


@app.middleware("http")
async def apply_rate_limiting(request: Request, call_next):  # type: ignore[override]
    client_ip = client_address(request, settings.trust_proxy_headers)
    path = request.url.path
    verdict = None
    if path in FORM_PATHS:
        if request.method == "POST":
            verdict = engine.check_request(client_ip, FORM_PATHS[path])
    elif path.startswith("/api/"):
        verdict = engine.check_request(client_ip)
    if verdict is not None and not verdict.allowed:
        return rate_limit_response(verdict)
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Unhandled exception", extra={"client_ip": client_ip})
        raise exc
    return response


def get_engine() -> RateLimitEngine:
    """Provide the process-wide rate limiting engine."""

    return engine


def get_recaptcha_verifier() -> RecaptchaVerifier:
    return recaptcha_verifier


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard operator endpoints behind ``FORMGUARD_ADMIN_TOKEN``."""

    if not settings.admin_token:
        raise HTTPException(status_code=404, detail="Not Found")
    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=403, detail="Invalid admin token.")


@app.get("/health")
def health() -> dict:
    return {"ok": True}


@app.get("/api/rate-limit/status")
def rate_limit_status(
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: RateLimitEngine = Depends(get_engine),
) -> dict:
    """Report the caller's current usage of the generic request tiers."""

    identifier = client_address(request, settings.trust_proxy_headers)
    return limiter.stats(identifier).to_dict()


@app.post("/api/contact")
async def submit_contact(
    request: Request,
    submission: ContactSubmission,
    settings: Settings = Depends(get_settings),
    limiter: RateLimitEngine = Depends(get_engine),
    verifier: RecaptchaVerifier = Depends(get_recaptcha_verifier),
):
    """Accept a contact form submission after the email limit and reCAPTCHA checks.

    The per-IP limit for this form already ran in ``apply_rate_limiting``.
    """

    client_ip = client_address(request, settings.trust_proxy_headers)
    verdict = limiter.check_email_limit(submission.email, CONTACT_FORM_TYPE)
    if not verdict.allowed:
        return rate_limit_response(verdict)

    if submission.recaptcha_token:
        result = await run_in_threadpool(verifier.verify, submission.recaptcha_token)
        if not result.success:
            LOGGER.info("reCAPTCHA rejected submission", extra={"client_ip": client_ip})
            return JSONResponse(status_code=400, content={"error": "reCAPTCHA verification failed."})

    LOGGER.info("Contact submission accepted", extra={"client_ip": client_ip})
    return {"success": True}


@app.get("/admin/rate-limits/{identifier}", dependencies=[Depends(require_admin)])
def admin_stats(
    identifier: str,
    form_type: Optional[str] = None,
    limiter: RateLimitEngine = Depends(get_engine),
) -> dict:
    return limiter.stats(identifier, form_type).to_dict()


@app.delete("/admin/rate-limits/{identifier}", dependencies=[Depends(require_admin)])
def admin_reset(identifier: str, limiter: RateLimitEngine = Depends(get_engine)) -> dict:
    limiter.reset(identifier)
    return {"reset": identifier}


@app.delete("/admin/rate-limits", dependencies=[Depends(require_admin)])
def admin_clear(limiter: RateLimitEngine = Depends(get_engine)) -> dict:
    limiter.clear_all()
    return {"cleared": True}


@app.post("/admin/rate-limits/sweep", dependencies=[Depends(require_admin)])
def admin_sweep(limiter: RateLimitEngine = Depends(get_engine)) -> dict:
    return {"evicted": limiter.sweep()}
