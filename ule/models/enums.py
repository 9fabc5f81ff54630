"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization. Values are the Spanish
identifiers the front end and the privacy log already use.
"""

from __future__ import annotations

from enum import Enum


class EstadoSolicitudEliminacion(str, Enum):
    """Persisted states of an account deletion request.

    Completion and cancellation delete the row, so they never appear here.
    """

    PENDIENTE = "PENDIENTE"
    EN_PERIODO_GRACIA = "EN_PERIODO_GRACIA"


ACTIVE_DELETION_STATES: tuple[str, ...] = tuple(state.value for state in EstadoSolicitudEliminacion)


class AccionPrivacidad(str, Enum):
    """Privacy-relevant actions recorded in the privacy log."""

    SOLICITUD_ELIMINACION = "SOLICITUD_ELIMINACION"
    ELIMINACION_CONFIRMADA = "ELIMINACION_CONFIRMADA"
    ELIMINACION_CANCELADA = "ELIMINACION_CANCELADA"
    ELIMINACION_EJECUTADA = "ELIMINACION_EJECUTADA"


DELETION_ACTIONS: tuple[AccionPrivacidad, ...] = (
    AccionPrivacidad.SOLICITUD_ELIMINACION,
    AccionPrivacidad.ELIMINACION_CONFIRMADA,
    AccionPrivacidad.ELIMINACION_CANCELADA,
    AccionPrivacidad.ELIMINACION_EJECUTADA,
)
