"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules (to
apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. Tests switch it off with `limiter.enabled = False`.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for credential-guessing endpoints, from LOGIN_RATE_LIMIT."""
    return get_settings().login_rate_limit
