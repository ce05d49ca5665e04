"""Client address helpers."""
from __future__ import annotations

from typing import Mapping, Optional

UNKNOWN_IP = "unknown-ip"

# Proxy headers in order of preference.
CLIENT_IP_HEADERS = (
    "cf-connecting-ip",  # Cloudflare
    "x-real-ip",  # nginx
    "x-forwarded-for",
    "x-client-ip",  # Apache
    "forwarded",
    "true-client-ip",  # Akamai, Cloudflare Enterprise
)


def _lookup(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette headers already are not.
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Return the first address found in the proxy headers, or ``unknown-ip``.

    Multi-valued headers such as ``x-forwarded-for`` contribute only their
    first comma-separated entry.
    """

    for name in CLIENT_IP_HEADERS:
        value = _lookup(headers, name)
        if not value:
            continue
        ip = value.split(",")[0].strip()
        if ip:
            return ip
    return UNKNOWN_IP
