"""
auth/ratelimit.py -- Fixed-window throttle keyed by account.

slowapi (api/limiter.py) throttles the auth routes per client IP before the
handler runs. That alone does not stop a distributed guesser working on one
mailbox's OTP from many addresses, so the orchestrator also throttles per
(operation, email) through this class.

Built on `limits`, the library slowapi itself delegates to, so both layers
share one window implementation and one storage URI syntax
("memory://", "redis://host:6379", ...).
"""

from __future__ import annotations

import logging
import math
import time

from limits import parse, storage, strategies

from auth.errors import TooManyRequestsError

logger = logging.getLogger("hostgate.auth")

_NAMESPACE = "hostgate-auth"


class RateLimiter:
    """Fixed-window counter. hit() raises once the window's ceiling is passed."""

    def __init__(self, limit: str = "30/minute", storage_uri: str = "memory://", enabled: bool = True) -> None:
        self.item = parse(limit)
        self.enabled = enabled
        self._storage = storage.storage_from_string(storage_uri)
        self._strategy = strategies.FixedWindowRateLimiter(self._storage)

    def hit(self, key: str) -> None:
        """Count one request for key; raise TooManyRequestsError if over the limit."""
        if not self.enabled:
            return
        if self._strategy.hit(self.item, _NAMESPACE, key):
            return
        reset_at, _remaining = self._strategy.get_window_stats(self.item, _NAMESPACE, key)
        retry_after = max(1, math.ceil(reset_at - time.time()))
        logger.warning("Rate limit exceeded for %s (retry in %ds)", key.split(":", 1)[0], retry_after)
        raise TooManyRequestsError("Too many attempts. Try again later.", retry_after=retry_after)
