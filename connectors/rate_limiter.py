"""
Fixed-window rate limiter backed by the shared store.

Policy note: a rejected call is *not* rolled back, it still consumes a slot
in the current window.  Over-limit callers that keep hammering therefore keep
the counter above the limit until the window rolls over.  This mirrors the
behaviour the connector layer has always had and is a product decision, not
an accident; switching to refund-on-reject needs sign-off.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Optional

from connectors.errors import RateLimitExceededError
from connectors.models import RateLimitPolicy
from connectors.store import SharedStore

logger = logging.getLogger(__name__)


def window_start(now: float, window_seconds: int) -> int:
    return int(math.floor(now / window_seconds) * window_seconds)


class RateLimiter:
    def __init__(self, store: SharedStore) -> None:
        self._store = store

    async def admit(self, connector_id: str, policy: Optional[RateLimitPolicy]) -> int:
        """
        Charge one request against the current window.

        Returns the post-increment count (0 when there is no policy).
        Raises RateLimitExceededError when the count exceeds ``max_requests``.
        """
        if policy is None:
            return 0

        start = window_start(time.time(), policy.window_seconds)
        key = f"rate_limit:{connector_id}:{start}"
        count = await self._store.incr_with_expiry(key, policy.window_seconds)

        if count > policy.max_requests:
            logger.warning(
                "Rate limit exceeded for %s: %d/%d in window %d",
                connector_id,
                count,
                policy.max_requests,
                start,
            )
            raise RateLimitExceededError(
                connector_id, policy.max_requests, policy.window_seconds, count
            )
        return count
