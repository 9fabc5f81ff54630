"""Authentication dependencies.

- `current_user_id`: session token from `Authorization: Bearer` or the
  session cookie, looked up by SHA-256 in `user_sessions`.
- `verify_cron_secret`: shared `CRON_SECRET` bearer for /cron/* endpoints.
- `verify_admin`: HTTP Basic with a single shared password for /admin/*.

Failures never say which check failed.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ule.config import Settings
from ule.db.engine import get_session
from ule.models.user import UserSession
from ule.privacy.deletion import utc_now

logger = logging.getLogger(__name__)

basic_security = HTTPBasic()


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if header and header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def client_ip(request: Request) -> str:
    """Best-effort client address behind the platform proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


async def current_user_id(
    request: Request,
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings_dep),
) -> uuid.UUID:
    """FastAPI dependency — resolve the session to a user id or raise 401."""
    token = _bearer_token(request) or request.cookies.get(settings.security.session_cookie_name)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado")

    result = await db.execute(
        select(UserSession).where(UserSession.token_hash == hash_session_token(token))
    )
    session = result.scalar_one_or_none()
    if session is None or not session.is_valid(utc_now()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado")

    return session.user_id


async def verify_cron_secret(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """FastAPI dependency — require `Authorization: Bearer <CRON_SECRET>`."""
    expected = settings.cron.cron_secret
    if not expected:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Configuración inválida",
        )

    provided = _bearer_token(request) or ""
    if not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(
            "Unauthorized cron call (authorization header %s, ip=%s)",
            "present" if request.headers.get("authorization") else "absent",
            client_ip(request),
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autorizado")


async def verify_admin(
    credentials: HTTPBasicCredentials = Depends(basic_security),
    settings: Settings = Depends(get_settings_dep),
) -> str:
    """FastAPI dependency — verify HTTP Basic credentials.

    Returns the username on success, raises 401 on failure.
    """
    expected = settings.security.admin_web_password
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ADMIN_WEB_PASSWORD not configured",
        )

    password_ok = secrets.compare_digest(
        credentials.password.encode("utf-8"),
        expected.encode("utf-8"),
    )
    if not password_ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No autorizado",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username
