"""
Retry executor — runs one logical call as up to ``max_attempts`` attempts.

Backoff waits use ``asyncio.sleep``: only the calling task is suspended, and
cancelling that task cancels the pending wait along with it.

Worst-case duration of a logical call is
``max_attempts * timeout + sum(backoff delays)`` because the timeout applies
per attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from connectors.errors import ConnectorError, RetryExhaustedError
from connectors.models import BackoffStrategy, RetryPolicy

logger = logging.getLogger(__name__)

R = TypeVar("R")


def compute_delay_ms(policy: RetryPolicy, attempt_index: int) -> int:
    """
    Delay before the retry that follows attempt ``attempt_index`` (0-based).

    Linear: base * (n + 1)   Exponential: base * 2**n
    """
    if policy.backoff == BackoffStrategy.LINEAR:
        return policy.base_delay_ms * (attempt_index + 1)
    return policy.base_delay_ms * (2**attempt_index)


async def execute_with_retry(
    attempt_fn: Callable[[int], Awaitable[R]],
    policy: Optional[RetryPolicy],
    *,
    label: str = "",
) -> Tuple[R, int]:
    """
    Call ``attempt_fn(attempt_number)`` until it succeeds or retries run out.

    Returns ``(result, retry_count)``.

    Non-retryable ConnectorErrors propagate unchanged on first occurrence.
    Retryable errors that outlast the policy are wrapped in
    RetryExhaustedError.  Without a policy there is a single attempt and its
    error propagates unwrapped.
    """
    max_attempts = policy.max_attempts if policy else 1

    for n in range(max_attempts):
        try:
            return await attempt_fn(n + 1), n
        except ConnectorError as exc:
            if not exc.retryable:
                raise
            if policy is None:
                raise
            if n + 1 >= max_attempts:
                logger.warning(
                    "%s failed after %d attempts: %s", label, max_attempts, exc.message
                )
                raise RetryExhaustedError(exc, retry_count=n) from exc

            delay_ms = compute_delay_ms(policy, n)
            logger.warning(
                "%s attempt %d/%d failed (%s) — retrying in %dms",
                label,
                n + 1,
                max_attempts,
                exc.message,
                delay_ms,
            )
            await asyncio.sleep(delay_ms / 1000)

    raise RuntimeError("unreachable: retry loop exited without result")
