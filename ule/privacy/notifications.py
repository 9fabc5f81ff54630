"""Deletion-lifecycle e-mails sent through the Resend HTTP API.

Endpoint: POST {base_url}/emails
Auth: Bearer API key

Sending never raises: a failed e-mail is logged and reported as False, the
workflow state it describes is already committed.
"""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from ule.config import EmailSettings

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Thin async wrapper around Resend for account-deletion notices."""

    def __init__(self, settings: EmailSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.resend_api_url.rstrip("/")
        self._client = client
        self._timeout = httpx.Timeout(settings.email_timeout, connect=5.0)

    @property
    def _bypass_mode(self) -> bool:
        """Return True if no API key is configured (dev/test bypass)."""
        return not self._settings.resend_api_key

    async def send(self, to: str, subject: str, html: str) -> bool:
        if self._bypass_mode:
            logger.info("Email bypass mode active, not sending: subject=%r", subject)
            return False

        payload = {
            "from": self._settings.email_from,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._settings.resend_api_key}"}

        try:
            if self._client is not None:
                response = await self._client.post(f"{self._base_url}/emails", json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(f"{self._base_url}/emails", json=payload, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("Resend timeout sending %r", subject)
            return False
        except httpx.HTTPStatusError as exc:
            logger.warning("Resend HTTP error %s sending %r", exc.response.status_code, subject)
            return False
        except httpx.HTTPError:
            logger.exception("Resend request failed sending %r", subject)
            return False

        return True

    # ── Lifecycle notices ────────────────────────────────────────────

    async def send_confirmation_link(self, to: str, token: str) -> bool:
        link = f"{self._settings.app_base_url.rstrip('/')}/privacy/confirm-deletion/{token}"
        return await self.send(
            to,
            "Confirma la eliminación de tu cuenta Ule",
            (
                "<p>Recibimos una solicitud para eliminar tu cuenta.</p>"
                f'<p><a href="{link}">Confirmar eliminación</a></p>'
                "<p>Si no la hiciste tú, ignora este mensaje.</p>"
            ),
        )

    async def send_grace_period_started(self, to: str, execution_date: datetime) -> bool:
        return await self.send(
            to,
            "Tu cuenta Ule será eliminada en 30 días",
            (
                "<p>Confirmaste la eliminación de tu cuenta.</p>"
                f"<p>Se ejecutará el {execution_date:%d/%m/%Y}. "
                "Puedes cancelarla en cualquier momento antes de esa fecha.</p>"
            ),
        )

    async def send_cancelled(self, to: str) -> bool:
        return await self.send(
            to,
            "Cancelaste la eliminación de tu cuenta Ule",
            "<p>Tu solicitud de eliminación fue cancelada. Tu cuenta sigue activa.</p>",
        )

    async def send_completed(self, to: str) -> bool:
        return await self.send(
            to,
            "Tu cuenta Ule fue eliminada",
            "<p>Tu cuenta y todos tus datos asociados fueron eliminados permanentemente.</p>",
        )
