"""Package exports commonly used helpers for convenience."""

from .config import Settings, get_settings
from .engine import FormRateLimitOptions, RateLimitEngine, RateLimitStats
from .logging_config import configure_logging
from .tiers import ConfigurationError, Tier
from .utils import get_client_ip
from .verdict import LimitType, Verdict

__all__ = [
    "ConfigurationError",
    "FormRateLimitOptions",
    "LimitType",
    "RateLimitEngine",
    "RateLimitStats",
    "Settings",
    "Tier",
    "Verdict",
    "configure_logging",
    "get_client_ip",
    "get_settings",
]
