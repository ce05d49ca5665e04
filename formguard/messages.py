"""Deny message templates.

Templates are plain ``str.format`` strings and may use ``{seconds}``,
``{minutes}`` and ``{hours}``. Pass a replacement mapping to the engine to
localize them.
"""
from __future__ import annotations

import math
from typing import Dict, Mapping, Optional

DEFAULT_MESSAGES: Dict[str, str] = {
    "short": "Rate limit exceeded. Please try again in {seconds} seconds.",
    "medium": "Too many requests. Please try again in {minutes} minutes.",
    "long": "Hourly limit reached. Please try again in {hours} hours.",
    "email_seconds": "Rate limit exceeded. Please try again in {seconds} seconds.",
    "email_minutes": "Rate limit exceeded. Please try again in {minutes} minutes.",
    "email_hours": "Rate limit exceeded. Please try again in {hours} hours.",
}


def merge_messages(overrides: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Return the default templates updated with ``overrides``."""

    merged = dict(DEFAULT_MESSAGES)
    if overrides:
        merged.update(overrides)
    return merged


def render(template: str, retry_after_seconds: int) -> str:
    """Fill a template with the retry time in seconds, minutes and hours."""

    return template.format(
        seconds=retry_after_seconds,
        minutes=math.ceil(retry_after_seconds / 60),
        hours=math.ceil(retry_after_seconds / 3600),
    )


def email_template_key(retry_after_seconds: int) -> str:
    """Pick the email template by the magnitude of the remaining time."""

    if retry_after_seconds < 60:
        return "email_seconds"
    if retry_after_seconds < 3600:
        return "email_minutes"
    return "email_hours"
