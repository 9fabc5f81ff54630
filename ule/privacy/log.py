"""Privacy log — append-only record of privacy-relevant actions.

Every write validates its metadata against the schema for its action, so
log rows never carry free-form payloads. No update or delete API.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ule.models.enums import DELETION_ACTIONS
from ule.models.privacy_log import PrivacyLogEntry
from ule.schemas.privacy import PrivacyMetadata, privacy_metadata_adapter

logger = logging.getLogger(__name__)


async def record_privacy_event(
    db: AsyncSession,
    user_id: uuid.UUID,
    metadata: PrivacyMetadata,
    description: str,
    ip_address: str | None = None,
    at: datetime | None = None,
) -> PrivacyLogEntry:
    """Add a log entry to the caller's transaction and flush it.

    `at` pins `created_at` to the workflow clock instead of the wall clock.
    """
    payload = privacy_metadata_adapter.dump_python(metadata, mode="json")
    entry = PrivacyLogEntry(
        user_id=user_id,
        action=metadata.accion.value,
        description=description,
        payload=payload,
        ip_address=ip_address,
    )
    if at is not None:
        entry.created_at = at
    db.add(entry)
    await db.flush()

    logger.debug("Privacy log: user=%s action=%s", user_id, entry.action)
    return entry


async def get_deletion_history(db: AsyncSession, user_id: uuid.UUID) -> list[PrivacyLogEntry]:
    """Deletion-related log entries for a user, newest first."""
    result = await db.execute(
        select(PrivacyLogEntry)
        .where(
            PrivacyLogEntry.user_id == user_id,
            PrivacyLogEntry.action.in_([a.value for a in DELETION_ACTIONS]),
        )
        .order_by(PrivacyLogEntry.created_at.desc())
    )
    return list(result.scalars().all())


async def get_privacy_log_paginated(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 50,
    user_id: uuid.UUID | None = None,
) -> tuple[list[PrivacyLogEntry], int]:
    """Paginated privacy log for the admin view. Returns (entries, total)."""
    query = select(PrivacyLogEntry)
    count_query = select(func.count(PrivacyLogEntry.id))
    if user_id is not None:
        query = query.where(PrivacyLogEntry.user_id == user_id)
        count_query = count_query.where(PrivacyLogEntry.user_id == user_id)

    result = await db.execute(count_query)
    total = result.scalar() or 0

    offset = (page - 1) * per_page
    result = await db.execute(
        query.order_by(PrivacyLogEntry.created_at.desc()).offset(offset).limit(per_page)
    )
    return list(result.scalars().all()), total
