"""
api/limiter.py -- Shared slowapi rate limiter instance (per client IP).

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share one counter store.
If each module built its own, each would get an isolated counter and limits
would never trigger.

This is the outer, per-IP layer. auth/ratelimit.py throttles per account
inside the orchestrator.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

# Limit string for every credential and code endpoint, e.g. "30/minute".
AUTH_LIMIT = _settings.auth_rate_limit

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_settings.rate_limit_storage_uri,
    enabled=_settings.rate_limit_enabled,
)
