"""Daily purge of expired and long-revoked user sessions.

Runs from /cron/limpiar-sesiones under its own lock and also sweeps
expired lock rows left behind by crashed holders.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, or_

from ule.db.engine import Database
from ule.jobs.lock import DEFAULT_LOCK_TTL, LockBackend
from ule.jobs.runner import JobOutcome, run_locked_job
from ule.models.user import UserSession

logger = logging.getLogger(__name__)

CLEANUP_SESSIONS_LOCK = "cron:cleanup-sessions"
REVOKED_SESSION_RETENTION = timedelta(days=7)


@dataclass
class SessionCleanupSummary:
    sesiones_eliminadas: int = 0
    locks_eliminados: int = 0


class SessionCleanupJob:
    def __init__(
        self,
        database: Database,
        lock: LockBackend,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._database = database
        self._lock = lock
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(self) -> JobOutcome[SessionCleanupSummary]:
        return await run_locked_job(self._lock, CLEANUP_SESSIONS_LOCK, self.cleanup, DEFAULT_LOCK_TTL)

    async def cleanup(self) -> SessionCleanupSummary:
        now = self._clock()
        async with self._database.session() as db:
            result = await db.execute(
                delete(UserSession).where(
                    or_(
                        UserSession.expires_at <= now,
                        UserSession.revoked_at <= now - REVOKED_SESSION_RETENTION,
                    )
                )
            )
            sessions_deleted = result.rowcount  # type: ignore[attr-defined]

        locks_deleted = await self._lock.clean_expired()

        logger.info("Session cleanup: sessions=%d locks=%d", sessions_deleted, locks_deleted)
        return SessionCleanupSummary(sesiones_eliminadas=sessions_deleted, locks_eliminados=locks_deleted)
