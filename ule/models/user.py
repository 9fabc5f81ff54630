"""User and UserSession models.

Deleting a user cascades at the database level to every row it owns
(sessions, deletion requests). Privacy log entries are not owned: they
keep the user id after the account is gone.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ule.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from ule.models.deletion import DeletionRequest


class User(TimestampMixin, Base):
    """A Ule account holder."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    nombre: Mapped[str | None] = mapped_column(String(200))

    sessions: Mapped[list[UserSession]] = relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    deletion_requests: Mapped[list[DeletionRequest]] = relationship(
        "DeletionRequest", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<User id={self.id}>"


class UserSession(TimestampMixin, Base):
    """An authenticated session, looked up by the SHA-256 of its token."""

    __tablename__ = "user_sessions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    ip_address: Mapped[str | None] = mapped_column(String(64))

    user: Mapped[User] = relationship("User", back_populates="sessions")

    def is_valid(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now

    def __repr__(self) -> str:
        return f"<UserSession user={self.user_id} expires={self.expires_at}>"
