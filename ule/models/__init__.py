"""SQLAlchemy ORM models for Ule.

Import all models here so Base.metadata.create_all() discovers them.
"""

from __future__ import annotations

from ule.models.base import Base
from ule.models.cron_lock import CronLock
from ule.models.deletion import DeletionRequest
from ule.models.enums import AccionPrivacidad, EstadoSolicitudEliminacion
from ule.models.privacy_log import PrivacyLogEntry
from ule.models.user import User, UserSession

__all__ = [
    # Base
    "Base",
    # Models
    "User",
    "UserSession",
    "DeletionRequest",
    "PrivacyLogEntry",
    "CronLock",
    # Enums
    "EstadoSolicitudEliminacion",
    "AccionPrivacidad",
]
