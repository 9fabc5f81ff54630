"""PrivacyLogEntry model — append-only trail of privacy-relevant actions.

`user_id` deliberately has no foreign key: entries outlive the account
they describe. Rows are never updated or deleted.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ule.models.base import Base, JSONType, TimestampMixin


class PrivacyLogEntry(TimestampMixin, Base):
    """Immutable privacy audit entry."""

    __tablename__ = "logs_privacidad"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    # "metadata" is reserved on declarative classes
    payload: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64))

    def __repr__(self) -> str:
        return f"<PrivacyLogEntry user={self.user_id} action={self.action}>"
