"""Exponential-backoff retry for flaky async remote calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0

# Failures whose message contains one of these are permanent: the backend
# is misconfigured, so another attempt would fail the same way.
NON_RETRYABLE_MARKERS: tuple[str, ...] = (
    "does not exist",
    "could not find the function",
    "missing configuration",
    "missing required configuration",
)


def is_retryable(exc: BaseException) -> bool:
    """Return ``False`` when *exc* describes a permanent configuration problem."""
    message = str(exc).lower()
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = MAX_RETRIES,
    base_delay: float = INITIAL_BACKOFF_SECONDS,
    label: str = "operation",
) -> T:
    """Await ``operation()`` up to *max_retries* times.

    The wait before attempt ``n + 1`` is ``base_delay * 2 ** n`` seconds.
    Non-retryable failures are re-raised on the first attempt; otherwise the
    last error is re-raised once attempts run out.
    """
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc):
                logger.warning(
                    "%s failed with a non-retryable error: %s", label, exc,
                )
                raise
            if attempt + 1 >= attempts:
                logger.warning(
                    "%s attempt %d/%d failed (%s). Giving up.",
                    label, attempt + 1, attempts, exc,
                )
                raise
            backoff = base_delay * (2 ** attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s). Retrying in %.1fs…",
                label, attempt + 1, attempts, exc, backoff,
            )
            await asyncio.sleep(backoff)

    raise AssertionError("unreachable")  # pragma: no cover
