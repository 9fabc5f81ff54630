"""Run a cron job body under a distributed lock."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Generic, TypeVar

from ule.jobs.lock import DEFAULT_LOCK_TTL, LockBackend, hold

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class JobOutcome(Generic[T]):
    """Result of a locked run. `result` is None when the run was skipped."""

    skipped: bool
    result: T | None = None
    duration_ms: int = 0


async def run_locked_job(
    lock: LockBackend,
    name: str,
    job: Callable[[], Awaitable[T]],
    ttl: timedelta = DEFAULT_LOCK_TTL,
) -> JobOutcome[T]:
    """Run `job` only if `name` can be locked.

    Contention is not an error: the outcome is reported as skipped. Errors
    raised by `job` propagate after the lock has been released.
    """
    started = time.monotonic()
    async with hold(lock, name, ttl) as acquired:
        if not acquired:
            logger.info("Job %s already running elsewhere, skipping", name)
            return JobOutcome(skipped=True)

        logger.info("Job %s started", name)
        result = await job()

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("Job %s finished in %dms", name, duration_ms)
    return JobOutcome(skipped=False, result=result, duration_ms=duration_ms)
