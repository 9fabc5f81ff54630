"""Distributed locks for cron jobs running on several instances.

Default backend is the `cron_locks` table: acquisition is a single
INSERT ... ON CONFLICT DO UPDATE ... WHERE expires_at <= now statement, so
two instances can never both observe "no lock" and both win. An expired
row counts as released, which covers holders that crashed. Release only
removes a row still owned by the caller, so a holder that overran its TTL
cannot drop the lock of the instance that took over.

A Redis backend (SET NX PX, compare-and-delete release) offers the same
contract for deployments that prefer it.

Usage:
    async with hold(lock, "cron:delete-accounts") as acquired:
        if not acquired:
            return  # another instance is running it
        ...
"""

from __future__ import annotations

import contextlib
import logging
import secrets
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from redis.exceptions import RedisError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ule.db.engine import dialect_insert
from ule.models.cron_lock import CronLock

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = timedelta(minutes=5)

# Delete the key only while it still holds our value
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class LockBackend(Protocol):
    async def acquire(self, name: str, ttl: timedelta = DEFAULT_LOCK_TTL) -> bool: ...

    async def release(self, name: str) -> None: ...

    async def is_active(self, name: str) -> bool: ...

    async def extend(self, name: str, ttl: timedelta = DEFAULT_LOCK_TTL) -> bool: ...

    async def clean_expired(self) -> int: ...


class DistributedLock:
    """Lock rows in the relational database.

    Each call runs in its own short transaction, independent of any request
    session, so a rolled-back job never takes its lock bookkeeping with it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))
        # Identifies this process as holder in the lock row
        self.holder_id = secrets.token_hex(8)

    async def acquire(self, name: str, ttl: timedelta = DEFAULT_LOCK_TTL) -> bool:
        """Try to take `name` for `ttl`. Returns False if held or on any storage error."""
        now = self._clock()
        expires_at = now + ttl

        try:
            async with self._session_factory() as db:
                stmt = dialect_insert(db, CronLock).values(
                    id=name,
                    holder=self.holder_id,
                    acquired_at=now,
                    expires_at=expires_at,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[CronLock.id],
                    set_={
                        "holder": stmt.excluded.holder,
                        "acquired_at": stmt.excluded.acquired_at,
                        "expires_at": stmt.excluded.expires_at,
                    },
                    where=CronLock.expires_at <= now,
                ).returning(CronLock.id)

                result = await db.execute(stmt)
                acquired = result.scalar_one_or_none() is not None
                await db.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("Lock acquire failed for %s, treating as not acquired", name)
            return False

        if acquired:
            logger.info("Lock acquired: %s (expires %s)", name, expires_at.isoformat())
        else:
            logger.info("Lock %s is held by another instance", name)
        return acquired

    async def release(self, name: str) -> None:
        """Delete the lock row if this instance still holds it.

        Releasing an absent lock, or one taken over by another instance after
        expiry, is a no-op.
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    delete(CronLock).where(CronLock.id == name, CronLock.holder == self.holder_id)
                )
                removed = result.rowcount  # type: ignore[attr-defined]
                await db.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("Lock release failed for %s; it will expire on its own", name)
            return

        if removed == 0:
            logger.warning("Lock %s not held by this instance on release", name)
        else:
            logger.info("Lock released: %s", name)

    async def is_active(self, name: str) -> bool:
        try:
            async with self._session_factory() as db:
                lock = await db.get(CronLock, name)
        except (SQLAlchemyError, OSError):
            logger.exception("Lock lookup failed for %s", name)
            return False
        return lock is not None and lock.expires_at > self._clock()

    async def extend(self, name: str, ttl: timedelta = DEFAULT_LOCK_TTL) -> bool:
        """Push the expiry of a live lock held by this instance to now + ttl."""
        now = self._clock()
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    update(CronLock)
                    .where(
                        CronLock.id == name,
                        CronLock.holder == self.holder_id,
                        CronLock.expires_at > now,
                    )
                    .values(expires_at=now + ttl)
                )
                extended = result.rowcount > 0  # type: ignore[attr-defined]
                await db.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("Lock extend failed for %s", name)
            return False
        return extended

    async def clean_expired(self) -> int:
        """Delete expired lock rows. Returns the number removed."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(delete(CronLock).where(CronLock.expires_at <= self._clock()))
                removed = result.rowcount  # type: ignore[attr-defined]
                await db.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("Failed to clean expired locks")
            return 0
        return removed

    async def list_active(self) -> list[CronLock]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(CronLock).where(CronLock.expires_at > self._clock()).order_by(CronLock.id)
                )
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError):
            logger.exception("Failed to list active locks")
            return []


class RedisLockBackend:
    """Same contract on Redis: the key's PX expiry is the lock TTL."""

    def __init__(self, redis: Any, prefix: str = "lock:") -> None:
        self._redis = redis
        self._prefix = prefix
        self.holder_id = secrets.token_hex(8)

    def _key(self, name: str) -> str:
        return f"{self._prefix}{name}"

    async def acquire(self, name: str, ttl: timedelta = DEFAULT_LOCK_TTL) -> bool:
        try:
            acquired = await self._redis.set(
                self._key(name), self.holder_id, nx=True, px=int(ttl.total_seconds() * 1000)
            )
        except (RedisError, OSError):
            logger.exception("Redis lock acquire failed for %s, treating as not acquired", name)
            return False
        return bool(acquired)

    async def release(self, name: str) -> None:
        try:
            removed = await self._redis.eval(RELEASE_SCRIPT, 1, self._key(name), self.holder_id)
        except (RedisError, OSError):
            logger.exception("Redis lock release failed for %s; it will expire on its own", name)
            return
        if not removed:
            logger.warning("Redis lock %s not held by this instance on release", name)

    async def is_active(self, name: str) -> bool:
        try:
            return bool(await self._redis.exists(self._key(name)))
        except (RedisError, OSError):
            logger.exception("Redis lock lookup failed for %s", name)
            return False

    async def extend(self, name: str, ttl: timedelta = DEFAULT_LOCK_TTL) -> bool:
        try:
            current = await self._redis.get(self._key(name))
            if current != self.holder_id:
                return False
            return bool(await self._redis.pexpire(self._key(name), int(ttl.total_seconds() * 1000)))
        except (RedisError, OSError):
            logger.exception("Redis lock extend failed for %s", name)
            return False

    async def clean_expired(self) -> int:
        # Redis expires keys itself
        return 0


@contextlib.asynccontextmanager
async def hold(
    lock: LockBackend, name: str, ttl: timedelta = DEFAULT_LOCK_TTL
) -> AsyncIterator[bool]:
    """Acquire `name` for the body of the block; yields whether it was acquired.

    The lock is released exactly once on exit, including on exceptions, and
    only if it was acquired.
    """
    acquired = await lock.acquire(name, ttl)
    try:
        yield acquired
    finally:
        if acquired:
            await lock.release(name)
