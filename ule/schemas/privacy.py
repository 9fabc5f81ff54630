"""Privacy API bodies and typed privacy-log metadata.

Request/response field names follow the front end's camelCase Spanish
contract; Python attributes stay snake_case via aliases.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ule.models.enums import AccionPrivacidad


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Request bodies ───────────────────────────────────────────────────


class DeletionRequestBody(_CamelModel):
    """POST /privacy/delete-account"""

    motivo_eliminacion: str | None = Field(default=None, alias="motivoEliminacion", max_length=1000)


class ConfirmationBody(_CamelModel):
    """POST /privacy/delete-account?action=confirm and /privacy/confirm-deletion"""

    token: str = Field(min_length=1, max_length=128)


# ── Responses ────────────────────────────────────────────────────────


class DeletionStatusOut(_CamelModel):
    """Active deletion request as rendered by the privacy dashboard."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    estado: str = Field(validation_alias="state")
    fecha_solicitud: datetime = Field(validation_alias="requested_at", serialization_alias="fechaSolicitud")
    fecha_confirmacion: datetime | None = Field(
        default=None, validation_alias="confirmed_at", serialization_alias="fechaConfirmacion"
    )
    fecha_ejecucion: datetime | None = Field(
        default=None, validation_alias="execution_date", serialization_alias="fechaEjecucion"
    )
    motivo_eliminacion: str | None = Field(
        default=None, validation_alias="reason", serialization_alias="motivoEliminacion"
    )


class PrivacyLogOut(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID = Field(serialization_alias="userId")
    accion: str = Field(validation_alias="action")
    descripcion: str = Field(validation_alias="description")
    metadata: dict = Field(validation_alias="payload")
    fecha: datetime = Field(validation_alias="created_at")


# ── Privacy log metadata (one schema per action) ─────────────────────


class SolicitudEliminacionMeta(BaseModel):
    accion: Literal[AccionPrivacidad.SOLICITUD_ELIMINACION] = AccionPrivacidad.SOLICITUD_ELIMINACION
    solicitud_id: uuid.UUID
    motivo: str | None = None


class EliminacionConfirmadaMeta(BaseModel):
    accion: Literal[AccionPrivacidad.ELIMINACION_CONFIRMADA] = AccionPrivacidad.ELIMINACION_CONFIRMADA
    solicitud_id: uuid.UUID
    fecha_ejecucion: datetime


class EliminacionCanceladaMeta(BaseModel):
    accion: Literal[AccionPrivacidad.ELIMINACION_CANCELADA] = AccionPrivacidad.ELIMINACION_CANCELADA
    solicitud_id: uuid.UUID
    estado_previo: str


class EliminacionEjecutadaMeta(BaseModel):
    accion: Literal[AccionPrivacidad.ELIMINACION_EJECUTADA] = AccionPrivacidad.ELIMINACION_EJECUTADA
    solicitud_id: uuid.UUID
    ejecutada_en: datetime


PrivacyMetadata = Annotated[
    SolicitudEliminacionMeta
    | EliminacionConfirmadaMeta
    | EliminacionCanceladaMeta
    | EliminacionEjecutadaMeta,
    Field(discriminator="accion"),
]

privacy_metadata_adapter: TypeAdapter[PrivacyMetadata] = TypeAdapter(PrivacyMetadata)
