"""Account deletion workflow — Ley 1581 de 2012, Art. 15 (derecho a la supresión).

Process:
1. The user requests deletion; a confirmation token is e-mailed.
2. The user confirms with the token; a 30-day grace period starts.
3. Once the grace period has elapsed the cron job executes the deletion.
4. The user may cancel at any time before execution.

States: PENDIENTE -> EN_PERIODO_GRACIA -> (account deleted). Cancelling and
executing both delete the request row. Every transition writes a privacy
log entry in the same transaction.

The service is stateless apart from its clock: an AsyncSession is passed
per call and the caller owns commit/rollback.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ule.db.engine import dialect_insert
from ule.models.deletion import DeletionRequest
from ule.models.enums import ACTIVE_DELETION_STATES, EstadoSolicitudEliminacion
from ule.models.privacy_log import PrivacyLogEntry
from ule.models.user import User
from ule.privacy.log import get_deletion_history, record_privacy_event
from ule.schemas.privacy import (
    EliminacionCanceladaMeta,
    EliminacionConfirmadaMeta,
    EliminacionEjecutadaMeta,
    SolicitudEliminacionMeta,
)
from ule.security.redaction import audit_logger

logger = logging.getLogger(__name__)

GRACE_PERIOD = timedelta(days=30)
TOKEN_BYTES = 32

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class DeletionError(Exception):
    """Base class for deletion workflow errors."""


class DeletionRequestNotFound(DeletionError):
    """No matching request. Wrong token and missing request look the same."""


class DeletionNotDue(DeletionError):
    """The request is not in its grace period or the period has not elapsed."""


@dataclass(frozen=True)
class ExecutedDeletion:
    """Identity of an account removed by `execute_deletion`."""

    user_id: uuid.UUID
    email: str | None


@dataclass(frozen=True)
class DeletionRequestOutcome:
    """Result of `request_deletion`: the active request and whether this call created it."""

    request: DeletionRequest
    created: bool

    @property
    def token(self) -> str:
        return self.request.confirmation_token

    @property
    def in_grace_period(self) -> bool:
        return self.request.state == EstadoSolicitudEliminacion.EN_PERIODO_GRACIA.value


def generate_confirmation_token() -> str:
    """256-bit random token, hex encoded."""
    return secrets.token_hex(TOKEN_BYTES)


class AccountDeletionService:
    """Drives a user's deletion request through its lifecycle."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def get_status(self, db: AsyncSession, user_id: uuid.UUID) -> DeletionRequest | None:
        """Return the user's active request, if any."""
        result = await db.execute(
            select(DeletionRequest)
            .where(
                DeletionRequest.user_id == user_id,
                DeletionRequest.state.in_(ACTIVE_DELETION_STATES),
            )
            .order_by(DeletionRequest.requested_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_history(self, db: AsyncSession, user_id: uuid.UUID) -> list[PrivacyLogEntry]:
        return await get_deletion_history(db, user_id)

    async def request_deletion(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        reason: str | None = None,
        source_ip: str | None = None,
    ) -> DeletionRequestOutcome:
        """Create a PENDIENTE request for the user, or return the active one.

        A user has at most one request row. The insert is a single
        INSERT ... ON CONFLICT (user_id) DO NOTHING, so concurrent calls
        produce one row; the losers get the winner's request back with
        `created=False` and write nothing.
        """
        existing = await self.get_status(db, user_id)
        if existing is not None:
            logger.info("Deletion already requested: user=%s request=%s", user_id, existing.id)
            return DeletionRequestOutcome(request=existing, created=False)

        now = self.now()
        stmt = (
            dialect_insert(db, DeletionRequest)
            .values(
                id=uuid.uuid4(),
                user_id=user_id,
                state=EstadoSolicitudEliminacion.PENDIENTE.value,
                confirmation_token=generate_confirmation_token(),
                requested_at=now,
                reason=reason,
                request_ip=source_ip,
            )
            .on_conflict_do_nothing(index_elements=[DeletionRequest.user_id])
            .returning(DeletionRequest.id)
        )
        request_id = (await db.execute(stmt)).scalar_one_or_none()

        if request_id is None:
            winner = await self.get_status(db, user_id)
            if winner is None:
                raise DeletionError("Solicitud concurrente no encontrada")
            logger.info("Deletion requested concurrently: user=%s request=%s", user_id, winner.id)
            return DeletionRequestOutcome(request=winner, created=False)

        request = await db.get(DeletionRequest, request_id)
        if request is None:
            raise DeletionRequestNotFound("Solicitud no encontrada")

        await record_privacy_event(
            db,
            user_id,
            SolicitudEliminacionMeta(solicitud_id=request.id, motivo=reason),
            "Solicitud de eliminación de cuenta creada",
            ip_address=source_ip,
            at=now,
        )

        audit_logger.info("deletion_requested", user_id=str(user_id), solicitud_id=str(request.id))
        return DeletionRequestOutcome(request=request, created=True)

    async def confirm_deletion(self, db: AsyncSession, user_id: uuid.UUID, token: str) -> datetime:
        """Start the grace period for the PENDIENTE request matching (user_id, token).

        Returns the execution date. Raises DeletionRequestNotFound when there
        is no such request, including a valid token belonging to someone else.
        """
        result = await db.execute(
            select(DeletionRequest).where(
                DeletionRequest.user_id == user_id,
                DeletionRequest.confirmation_token == token,
                DeletionRequest.state == EstadoSolicitudEliminacion.PENDIENTE.value,
            )
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise DeletionRequestNotFound("Token inválido o solicitud no encontrada")

        return await self._start_grace_period(db, request)

    async def confirm_deletion_by_token(self, db: AsyncSession, token: str) -> tuple[uuid.UUID, datetime]:
        """Confirm from the e-mailed link, where no session is available."""
        result = await db.execute(
            select(DeletionRequest).where(
                DeletionRequest.confirmation_token == token,
                DeletionRequest.state == EstadoSolicitudEliminacion.PENDIENTE.value,
            )
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise DeletionRequestNotFound("Token inválido o solicitud no encontrada")

        execution_date = await self._start_grace_period(db, request)
        return request.user_id, execution_date

    async def _start_grace_period(self, db: AsyncSession, request: DeletionRequest) -> datetime:
        now = self.now()
        execution_date = now + GRACE_PERIOD

        request.state = EstadoSolicitudEliminacion.EN_PERIODO_GRACIA.value
        request.confirmed_at = now
        request.execution_date = execution_date
        await db.flush()

        await record_privacy_event(
            db,
            request.user_id,
            EliminacionConfirmadaMeta(solicitud_id=request.id, fecha_ejecucion=execution_date),
            f"Eliminación confirmada. Se ejecutará el {execution_date:%d/%m/%Y}",
            at=now,
        )

        audit_logger.info(
            "deletion_confirmed",
            user_id=str(request.user_id),
            solicitud_id=str(request.id),
            fecha_ejecucion=execution_date.isoformat(),
        )
        return execution_date

    async def cancel_deletion(self, db: AsyncSession, user_id: uuid.UUID) -> bool:
        """Remove the user's active request. Returns False if there was none."""
        request = await self.get_status(db, user_id)
        if request is None:
            logger.debug("No active deletion request to cancel: user=%s", user_id)
            return False

        previous_state = request.state
        request_id = request.id
        await db.execute(delete(DeletionRequest).where(DeletionRequest.id == request_id))

        await record_privacy_event(
            db,
            user_id,
            EliminacionCanceladaMeta(solicitud_id=request_id, estado_previo=previous_state),
            "Solicitud de eliminación cancelada por el usuario",
            at=self.now(),
        )

        audit_logger.info("deletion_cancelled", user_id=str(user_id), solicitud_id=str(request_id))
        return True

    async def list_due(self, db: AsyncSession) -> list[DeletionRequest]:
        """Requests in their grace period whose execution date has passed."""
        result = await db.execute(
            select(DeletionRequest)
            .where(
                DeletionRequest.state == EstadoSolicitudEliminacion.EN_PERIODO_GRACIA.value,
                DeletionRequest.execution_date.is_not(None),
                DeletionRequest.execution_date <= self.now(),
            )
            .order_by(DeletionRequest.execution_date)
        )
        return list(result.scalars().all())

    async def execute_deletion(self, db: AsyncSession, request_id: uuid.UUID) -> ExecutedDeletion:
        """Permanently delete the account behind a due request.

        The final log entry is written first, then the request and the user
        are deleted; the user's owned rows go with it through ON DELETE
        CASCADE.
        """
        request = await db.get(DeletionRequest, request_id)
        if request is None:
            raise DeletionRequestNotFound("Solicitud no encontrada")

        if request.state != EstadoSolicitudEliminacion.EN_PERIODO_GRACIA.value:
            raise DeletionNotDue(f"Solicitud no está en periodo de gracia. Estado: {request.state}")

        now = self.now()
        if request.execution_date is None or now < request.execution_date:
            raise DeletionNotDue("No ha transcurrido el periodo de gracia de 30 días")

        user_id = request.user_id
        user = await db.get(User, user_id)
        email = user.email if user is not None else None
        audit_logger.info("deletion_started", user_id=str(user_id), solicitud_id=str(request_id))

        await record_privacy_event(
            db,
            user_id,
            EliminacionEjecutadaMeta(solicitud_id=request_id, ejecutada_en=now),
            "Cuenta eliminada permanentemente",
            at=now,
        )

        await db.execute(delete(DeletionRequest).where(DeletionRequest.id == request_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.flush()

        audit_logger.info("deletion_executed", user_id=str(user_id), solicitud_id=str(request_id))
        return ExecutedDeletion(user_id=user_id, email=email)
