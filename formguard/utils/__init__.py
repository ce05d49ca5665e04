"""Utility helpers."""
from .network import CLIENT_IP_HEADERS, UNKNOWN_IP, get_client_ip  # noqa: F401
from .time import now_ms  # noqa: F401
