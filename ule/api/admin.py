"""Admin privacy endpoints — deletion overview and privacy log (JSON).

All routes require HTTP Basic Auth via verify_admin.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ule.api.auth import verify_admin
from ule.db.engine import get_session
from ule.models.deletion import DeletionRequest
from ule.privacy.log import get_privacy_log_paginated
from ule.schemas.privacy import DeletionStatusOut, PrivacyLogOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/privacy", tags=["admin"])


@router.get("/deletions")
async def deletion_overview(
    db: AsyncSession = Depends(get_session),
    admin: str = Depends(verify_admin),
) -> dict[str, Any]:
    """Active deletion requests with per-state counts."""
    logger.info("Admin %s viewed deletion overview", admin)

    result = await db.execute(
        select(DeletionRequest.state, func.count(DeletionRequest.id)).group_by(DeletionRequest.state)
    )
    counts = {state: count for state, count in result.all()}

    result = await db.execute(
        select(DeletionRequest).order_by(DeletionRequest.execution_date.asc().nulls_last())
    )
    requests = result.scalars().all()

    return {
        "conteos": counts,
        "solicitudes": [
            {
                **DeletionStatusOut.model_validate(r).model_dump(mode="json", by_alias=True),
                "userId": str(r.user_id),
            }
            for r in requests
        ],
    }


@router.get("/log")
async def privacy_log(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
    user_id: uuid.UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_session),
    admin: str = Depends(verify_admin),
) -> dict[str, Any]:
    """Paginated privacy log, optionally filtered by user."""
    logger.info("Admin %s viewed privacy log page=%d", admin, page)

    entries, total = await get_privacy_log_paginated(db, page=page, per_page=per_page, user_id=user_id)
    total_pages = max(1, (total + per_page - 1) // per_page)

    return {
        "entries": [PrivacyLogOut.model_validate(e).model_dump(mode="json", by_alias=True) for e in entries],
        "page": page,
        "total": total,
        "totalPages": total_pages,
    }
