"""CronLock model — one row per held distributed lock."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ule.models.base import Base, UTCDateTime


class CronLock(Base):
    """A named lock; expired rows count as released."""

    __tablename__ = "cron_locks"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    holder: Mapped[str] = mapped_column(String(64), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<CronLock id={self.id} expires={self.expires_at}>"
