"""DeletionRequest model — right-to-erasure workflow (Ley 1581 de 2012, Art. 15)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ule.models.base import Base, TimestampMixin, UTCDateTime
from ule.models.enums import EstadoSolicitudEliminacion

if TYPE_CHECKING:
    from ule.models.user import User


class DeletionRequest(TimestampMixin, Base):
    """An active account deletion request.

    Only PENDIENTE and EN_PERIODO_GRACIA rows exist; cancelling or executing
    the request deletes the row.
    """

    __tablename__ = "solicitudes_eliminacion"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )

    state: Mapped[str] = mapped_column(
        String(20), default=EstadoSolicitudEliminacion.PENDIENTE.value, nullable=False, index=True
    )
    confirmation_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    execution_date: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)

    reason: Mapped[str | None] = mapped_column(String(1000))
    request_ip: Mapped[str | None] = mapped_column(String(64))

    user: Mapped[User] = relationship("User", back_populates="deletion_requests")

    def __repr__(self) -> str:
        return f"<DeletionRequest user={self.user_id} state={self.state}>"
