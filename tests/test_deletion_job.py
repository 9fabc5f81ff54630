"""Tests for the scheduled deletion and session cleanup jobs."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from tests.conftest import create_session, create_user
from ule.api.auth import hash_session_token
from ule.jobs.deletions import DELETE_ACCOUNTS_LOCK, DeletionJob
from ule.jobs.lock import DistributedLock
from ule.jobs.sessions import CLEANUP_SESSIONS_LOCK, SessionCleanupJob
from ule.models.enums import AccionPrivacidad, EstadoSolicitudEliminacion
from ule.models.privacy_log import PrivacyLogEntry
from ule.models.user import User, UserSession
from ule.privacy.deletion import AccountDeletionService, ExecutedDeletion


class FlakyDeletionService(AccountDeletionService):
    """Fails after doing its writes for one chosen request."""

    def __init__(self, clock, fail_for: set[uuid.UUID]) -> None:
        super().__init__(clock=clock)
        self.fail_for = fail_for

    async def execute_deletion(self, db, request_id) -> ExecutedDeletion:
        executed = await super().execute_deletion(db, request_id)
        if request_id in self.fail_for:
            raise RuntimeError("storage hiccup")
        return executed


async def _confirmed_request(database, service, clock) -> tuple[uuid.UUID, uuid.UUID]:
    """Create a user with a confirmed deletion request. Returns (user_id, request_id)."""
    user_id = await create_user(database)
    async with database.session() as db:
        token = (await service.request_deletion(db, user_id)).token
    async with database.session() as db:
        await service.confirm_deletion(db, user_id, token)
    async with database.session() as db:
        request = await service.get_status(db, user_id)
    return user_id, request.id


async def _user_exists(database, user_id) -> bool:
    async with database.session() as db:
        return await db.get(User, user_id) is not None


class TestDeletionJob:
    @pytest.mark.asyncio()
    async def test_nothing_due(self, database, clock):
        service = AccountDeletionService(clock=clock)
        job = DeletionJob(database, DistributedLock(database.session_factory, clock=clock), service)
        await _confirmed_request(database, service, clock)

        outcome = await job.run()

        assert outcome.skipped is False
        assert outcome.result.total == 0
        assert outcome.result.exitosas == 0

    @pytest.mark.asyncio()
    async def test_executes_due_requests_only(self, database, clock):
        service = AccountDeletionService(clock=clock)
        notifier = AsyncMock()
        job = DeletionJob(database, DistributedLock(database.session_factory, clock=clock), service, notifier)

        early_user, _ = await _confirmed_request(database, service, clock)
        clock.advance(days=10)
        late_user, _ = await _confirmed_request(database, service, clock)

        clock.advance(days=21)
        outcome = await job.run()

        assert outcome.result.total == 1
        assert outcome.result.exitosas == 1
        assert await _user_exists(database, early_user) is False
        assert await _user_exists(database, late_user) is True
        notifier.send_completed.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_one_failure_does_not_stop_the_rest(self, database, clock):
        created = []
        plain = AccountDeletionService(clock=clock)
        for _ in range(4):
            created.append(await _confirmed_request(database, plain, clock))
        failing_user, failing_request = created[1]

        service = FlakyDeletionService(clock, fail_for={failing_request})
        job = DeletionJob(database, DistributedLock(database.session_factory, clock=clock), service)

        clock.advance(days=31)
        outcome = await job.run()
        summary = outcome.result

        assert summary.total == 4
        assert summary.exitosas == 3
        assert summary.fallidas == 1
        assert len(summary.errores) == 1
        assert summary.errores[0].solicitud_id == str(failing_request)
        assert "storage hiccup" in summary.errores[0].error

        # The failed execution was rolled back in full
        assert await _user_exists(database, failing_user) is True
        async with database.session() as db:
            request = await service.get_status(db, failing_user)
            executed_logs = await db.scalar(
                select(func.count(PrivacyLogEntry.id)).where(
                    PrivacyLogEntry.user_id == failing_user,
                    PrivacyLogEntry.action == AccionPrivacidad.ELIMINACION_EJECUTADA.value,
                )
            )
        assert request.state == EstadoSolicitudEliminacion.EN_PERIODO_GRACIA.value
        assert executed_logs == 0

        for user_id, request_id in created:
            if request_id != failing_request:
                assert await _user_exists(database, user_id) is False

    @pytest.mark.asyncio()
    async def test_failed_request_is_retried_on_next_run(self, database, clock):
        plain = AccountDeletionService(clock=clock)
        user_id, request_id = await _confirmed_request(database, plain, clock)
        lock = DistributedLock(database.session_factory, clock=clock)
        clock.advance(days=31)

        flaky = DeletionJob(database, lock, FlakyDeletionService(clock, fail_for={request_id}))
        assert (await flaky.run()).result.fallidas == 1

        outcome = await DeletionJob(database, lock, plain).run()
        assert outcome.result.exitosas == 1
        assert await _user_exists(database, user_id) is False

    @pytest.mark.asyncio()
    async def test_skipped_while_another_instance_holds_the_lock(self, database, clock):
        service = AccountDeletionService(clock=clock)
        user_id, _ = await _confirmed_request(database, service, clock)
        other_instance = DistributedLock(database.session_factory, clock=clock)
        await other_instance.acquire(DELETE_ACCOUNTS_LOCK)

        clock.advance(days=31)
        job = DeletionJob(database, DistributedLock(database.session_factory, clock=clock), service)
        outcome = await job.run()

        assert outcome.skipped is True
        assert await _user_exists(database, user_id) is True

    @pytest.mark.asyncio()
    async def test_lock_released_after_run(self, database, clock):
        service = AccountDeletionService(clock=clock)
        lock = DistributedLock(database.session_factory, clock=clock)
        job = DeletionJob(database, lock, service)

        await job.run()

        assert await lock.is_active(DELETE_ACCOUNTS_LOCK) is False


class TestEndToEnd:
    @pytest.mark.asyncio()
    async def test_request_confirm_wait_execute(self, database, clock):
        service = AccountDeletionService(clock=clock)
        job = DeletionJob(database, DistributedLock(database.session_factory, clock=clock), service)
        user_id = await create_user(database)

        async with database.session() as db:
            token = (await service.request_deletion(db, user_id, reason="Cierre de cuenta")).token
        clock.advance(minutes=10)
        async with database.session() as db:
            await service.confirm_deletion(db, user_id, token)

        clock.advance(days=31)
        outcome = await job.run()

        assert outcome.result.exitosas == 1
        assert await _user_exists(database, user_id) is False
        async with database.session() as db:
            assert await service.get_status(db, user_id) is None
            actions = set(
                (
                    await db.execute(
                        select(PrivacyLogEntry.action).where(PrivacyLogEntry.user_id == user_id)
                    )
                ).scalars()
            )
        assert AccionPrivacidad.ELIMINACION_CONFIRMADA.value in actions
        assert AccionPrivacidad.ELIMINACION_EJECUTADA.value in actions

    @pytest.mark.asyncio()
    async def test_cancel_then_wait_keeps_account(self, database, clock):
        service = AccountDeletionService(clock=clock)
        job = DeletionJob(database, DistributedLock(database.session_factory, clock=clock), service)
        user_id, _ = await _confirmed_request(database, service, clock)

        clock.advance(days=5)
        async with database.session() as db:
            await service.cancel_deletion(db, user_id)

        clock.advance(days=40)
        outcome = await job.run()

        assert outcome.result.total == 0
        assert await _user_exists(database, user_id) is True


class TestSessionCleanupJob:
    @pytest.mark.asyncio()
    async def test_removes_expired_and_old_revoked_sessions(self, database, clock):
        user_id = await create_user(database)
        now = datetime.now(UTC)
        keep = await create_session(database, user_id)
        await create_session(database, user_id, valid_for=timedelta(hours=-1))
        recently_revoked = await create_session(database, user_id)
        long_revoked = await create_session(database, user_id)

        async with database.session() as db:
            sessions = (await db.execute(select(UserSession))).scalars().all()
            by_hash = {s.token_hash: s for s in sessions}
            by_hash[hash_session_token(recently_revoked)].revoked_at = now - timedelta(days=1)
            by_hash[hash_session_token(long_revoked)].revoked_at = now - timedelta(days=8)

        lock = DistributedLock(database.session_factory, clock=clock)
        job = SessionCleanupJob(database, lock, clock=lambda: now)
        outcome = await job.run()

        assert outcome.result.sesiones_eliminadas == 2
        async with database.session() as db:
            remaining = {s.token_hash for s in (await db.execute(select(UserSession))).scalars()}
        assert remaining == {hash_session_token(keep), hash_session_token(recently_revoked)}

    @pytest.mark.asyncio()
    async def test_also_sweeps_expired_locks(self, database, clock):
        lock = DistributedLock(database.session_factory, clock=clock)
        await lock.acquire("cron:orphan", ttl=timedelta(minutes=1))
        clock.advance(minutes=10)

        outcome = await SessionCleanupJob(database, lock, clock=clock).run()

        assert outcome.result.locks_eliminados == 1
        assert await lock.is_active(CLEANUP_SESSIONS_LOCK) is False
