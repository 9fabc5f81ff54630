"""Scheduled execution of account deletions whose grace period has elapsed.

Meant to run daily (02:00) from an external scheduler hitting
/cron/eliminar-cuentas. Each due request is executed in its own
transaction: one failure is rolled back and reported, the rest commit.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from ule.db.engine import Database
from ule.jobs.lock import DEFAULT_LOCK_TTL, LockBackend
from ule.jobs.runner import JobOutcome, run_locked_job
from ule.privacy.deletion import AccountDeletionService
from ule.privacy.notifications import EmailNotifier
from ule.security.redaction import audit_logger

logger = logging.getLogger(__name__)

DELETE_ACCOUNTS_LOCK = "cron:delete-accounts"


@dataclass
class DeletionFailureDetail:
    solicitud_id: str
    error: str


@dataclass
class DeletionJobSummary:
    """Per-run counts, mirrored in the cron endpoint response."""

    total: int = 0
    exitosas: int = 0
    fallidas: int = 0
    errores: list[DeletionFailureDetail] = field(default_factory=list)


class DeletionJob:
    """Executes every due deletion request, isolating per-request failures."""

    def __init__(
        self,
        database: Database,
        lock: LockBackend,
        service: AccountDeletionService,
        notifier: EmailNotifier | None = None,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
    ) -> None:
        self._database = database
        self._lock = lock
        self._service = service
        self._notifier = notifier
        self._lock_ttl = lock_ttl

    async def run(self) -> JobOutcome[DeletionJobSummary]:
        return await run_locked_job(self._lock, DELETE_ACCOUNTS_LOCK, self.process_due, self._lock_ttl)

    async def process_due(self) -> DeletionJobSummary:
        """Execute all due requests. Callers are expected to hold the lock."""
        async with self._database.session() as db:
            due = await self._service.list_due(db)
            due_ids: list[tuple[uuid.UUID, uuid.UUID]] = [(r.id, r.user_id) for r in due]

        summary = DeletionJobSummary(total=len(due_ids))
        if not due_ids:
            logger.info("No deletion requests due")
            return summary

        logger.info("Found %d deletion request(s) due", len(due_ids))

        for request_id, user_id in due_ids:
            try:
                async with self._database.session() as db:
                    executed = await self._service.execute_deletion(db, request_id)
            except Exception as exc:
                summary.fallidas += 1
                summary.errores.append(DeletionFailureDetail(solicitud_id=str(request_id), error=str(exc)))
                logger.exception("Deletion failed: request=%s user=%s", request_id, user_id)
                continue

            summary.exitosas += 1
            audit_logger.info("account_deleted_by_cron", solicitud_id=str(request_id), user_id=str(user_id))

            if self._notifier is not None and executed.email:
                await self._notifier.send_completed(executed.email)

        if summary.fallidas:
            logger.warning("%d deletion(s) failed", summary.fallidas)

        audit_logger.info(
            "deletion_job_completed",
            total=summary.total,
            exitosas=summary.exitosas,
            fallidas=summary.fallidas,
        )
        return summary
