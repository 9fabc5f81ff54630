"""Privacy API — account deletion (Ley 1581 de 2012, derecho al olvido).

All routes except the e-mailed confirmation link require a user session.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
import uuid
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ule.api.auth import client_ip, current_user_id
from ule.db.engine import get_session
from ule.models.user import User
from ule.privacy.deletion import AccountDeletionService, DeletionRequestNotFound
from ule.privacy.notifications import EmailNotifier
from ule.schemas.privacy import (
    ConfirmationBody,
    DeletionRequestBody,
    DeletionStatusOut,
    PrivacyLogOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/privacy", tags=["privacy"])

INVALID_TOKEN_MESSAGE = "Token inválido o solicitud no encontrada"


def get_deletion_service(request: Request) -> AccountDeletionService:
    return request.app.state.deletion_service


def get_notifier(request: Request) -> EmailNotifier:
    return request.app.state.notifier


async def _user_email(db: AsyncSession, user_id: uuid.UUID) -> str | None:
    user = await db.get(User, user_id)
    return user.email if user is not None else None


def _server_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


def _invalid_token() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": INVALID_TOKEN_MESSAGE})


@router.get("/delete-account")
async def get_deletion_status(
    historial: bool = Query(default=False),
    db: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(current_user_id),
    service: AccountDeletionService = Depends(get_deletion_service),
) -> Any:
    """Active request (or the deletion history with ?historial=true)."""
    try:
        if historial:
            entries = await service.get_history(db, user_id)
            return {
                "historial": [
                    PrivacyLogOut.model_validate(e).model_dump(mode="json", by_alias=True) for e in entries
                ]
            }

        request = await service.get_status(db, user_id)
    except Exception:
        logger.exception("Error in GET /privacy/delete-account")
        return _server_error("Error al obtener estado")

    return {
        "solicitud": (
            DeletionStatusOut.model_validate(request).model_dump(mode="json", by_alias=True)
            if request is not None
            else None
        ),
        "tieneSolicitudActiva": request is not None,
    }


@router.post("/delete-account")
async def post_delete_account(
    request: Request,
    action: Literal["confirm", "cancel"] | None = Query(default=None),
    payload: dict[str, Any] | None = Body(default=None),
    db: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(current_user_id),
    service: AccountDeletionService = Depends(get_deletion_service),
    notifier: EmailNotifier = Depends(get_notifier),
) -> Any:
    """Create a deletion request, or confirm/cancel it with ?action=."""
    body = payload or {}

    if action == "confirm":
        confirmation = ConfirmationBody.model_validate(body)
        try:
            execution_date = await service.confirm_deletion(db, user_id, confirmation.token)
            await db.commit()
        except DeletionRequestNotFound:
            await db.rollback()
            return _invalid_token()
        except Exception:
            await db.rollback()
            logger.exception("Error confirming deletion: user=%s", user_id)
            return _server_error("Error al procesar solicitud")

        email = await _user_email(db, user_id)
        if email:
            await notifier.send_grace_period_started(email, execution_date)

        return {
            "success": True,
            "message": "Eliminación confirmada. Se ejecutará en 30 días. Puedes cancelarla en cualquier momento.",
            "fechaEjecucion": execution_date.isoformat(),
        }

    if action == "cancel":
        return await _cancel(db, user_id, service, notifier, "Solicitud de eliminación cancelada exitosamente")

    data = DeletionRequestBody.model_validate(body)
    try:
        outcome = await service.request_deletion(
            db, user_id, reason=data.motivo_eliminacion, source_ip=client_ip(request)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Error requesting deletion: user=%s", user_id)
        return _server_error("Error al procesar solicitud")

    # The token of a confirmed request is spent; never hand it out or mail it again
    if outcome.in_grace_period:
        execution_date = outcome.request.execution_date
        assert execution_date is not None
        return {
            "success": True,
            "message": f"Tu cuenta ya tiene una eliminación confirmada para el {execution_date:%d/%m/%Y}.",
            "estado": outcome.request.state,
            "fechaEjecucion": execution_date.isoformat(),
        }

    if not outcome.created:
        return {
            "success": True,
            "message": "Ya existe una solicitud pendiente. Revisa tu correo para confirmar la eliminación.",
            "estado": outcome.request.state,
            "token": outcome.token,
        }

    email = await _user_email(db, user_id)
    if email:
        await notifier.send_confirmation_link(email, outcome.token)

    return {
        "success": True,
        "message": "Solicitud creada. Revisa tu correo para confirmar la eliminación.",
        "estado": outcome.request.state,
        "token": outcome.token,
    }


@router.delete("/delete-account")
async def delete_delete_account(
    db: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(current_user_id),
    service: AccountDeletionService = Depends(get_deletion_service),
    notifier: EmailNotifier = Depends(get_notifier),
) -> Any:
    """Cancel the active deletion request."""
    return await _cancel(db, user_id, service, notifier, "Solicitud de eliminación cancelada")


async def _cancel(
    db: AsyncSession,
    user_id: uuid.UUID,
    service: AccountDeletionService,
    notifier: EmailNotifier,
    message: str,
) -> Any:
    try:
        cancelled = await service.cancel_deletion(db, user_id)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Error cancelling deletion: user=%s", user_id)
        return _server_error("Error al cancelar solicitud")

    if cancelled:
        email = await _user_email(db, user_id)
        if email:
            await notifier.send_cancelled(email)

    return {"success": True, "message": message}


@router.post("/confirm-deletion")
async def confirm_deletion_link(
    body: ConfirmationBody,
    db: AsyncSession = Depends(get_session),
    service: AccountDeletionService = Depends(get_deletion_service),
    notifier: EmailNotifier = Depends(get_notifier),
) -> Any:
    """Confirmation from the e-mailed link; the token is the only credential."""
    try:
        user_id, execution_date = await service.confirm_deletion_by_token(db, body.token)
        await db.commit()
    except DeletionRequestNotFound:
        await db.rollback()
        return _invalid_token()
    except Exception:
        await db.rollback()
        logger.exception("Error confirming deletion via link")
        return _server_error("Error al confirmar eliminación")

    email = await _user_email(db, user_id)
    if email:
        await notifier.send_grace_period_started(email, execution_date)

    return {
        "success": True,
        "message": "Tu solicitud de eliminación ha sido confirmada. Tu cuenta será eliminada en 30 días.",
        "fechaEjecucion": execution_date.isoformat(),
    }
