"""Shared rate limiter (in-memory, per client IP).

Applied to the login and registration endpoints. Disabled with
RATE_LIMIT_ENABLED=false (the test suite does this).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)
