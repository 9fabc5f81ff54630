"""Privacy module — account deletion workflow, privacy log, notifications."""

from ule.privacy.deletion import (
    AccountDeletionService,
    DeletionError,
    DeletionNotDue,
    DeletionRequestNotFound,
    DeletionRequestOutcome,
)
from ule.privacy.notifications import EmailNotifier

__all__ = [
    "AccountDeletionService",
    "DeletionError",
    "DeletionNotDue",
    "DeletionRequestNotFound",
    "DeletionRequestOutcome",
    "EmailNotifier",
]
