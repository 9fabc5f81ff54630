"""Cron endpoints — invoked by the platform scheduler with the CRON_SECRET bearer.

Scheduler configuration (daily):
    /cron/eliminar-cuentas     0 2 * * *
    /cron/limpiar-sesiones     0 3 * * *
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ule.api.auth import verify_cron_secret
from ule.jobs.deletions import DeletionJob
from ule.jobs.sessions import SessionCleanupJob

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


def get_deletion_job(request: Request) -> DeletionJob:
    return request.app.state.deletion_job


def get_session_cleanup_job(request: Request) -> SessionCleanupJob:
    return request.app.state.session_cleanup_job


def _skipped() -> dict[str, Any]:
    return {"success": True, "skipped": True, "message": "Job ya en ejecución"}


@router.get("/eliminar-cuentas")
async def eliminar_cuentas(job: DeletionJob = Depends(get_deletion_job)) -> Any:
    """Execute every deletion whose grace period has elapsed."""
    try:
        outcome = await job.run()
    except Exception:
        logger.exception("Fatal error in account deletion cron job")
        return JSONResponse(status_code=500, content={"success": False, "error": "Error ejecutando cron job"})

    if outcome.skipped or outcome.result is None:
        return _skipped()

    summary = outcome.result
    return {
        "success": True,
        "message": "Proceso de eliminación completado",
        "total": summary.total,
        "exitosas": summary.exitosas,
        "fallidas": summary.fallidas,
        "errores": [{"solicitudId": e.solicitud_id, "error": e.error} for e in summary.errores],
        "duracion": f"{outcome.duration_ms}ms",
    }


@router.get("/limpiar-sesiones")
async def limpiar_sesiones(job: SessionCleanupJob = Depends(get_session_cleanup_job)) -> Any:
    """Purge expired sessions and stale lock rows."""
    try:
        outcome = await job.run()
    except Exception:
        logger.exception("Fatal error in session cleanup cron job")
        return JSONResponse(status_code=500, content={"success": False, "error": "Error ejecutando cron job"})

    if outcome.skipped or outcome.result is None:
        return _skipped()

    summary = asdict(outcome.result)
    return {
        "success": True,
        "sesionesEliminadas": summary["sesiones_eliminadas"],
        "locksEliminados": summary["locks_eliminados"],
        "duracion": f"{outcome.duration_ms}ms",
    }
