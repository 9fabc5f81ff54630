"""Structured audit logging with sensitive-field redaction.

The audit channel is a structlog logger. Its processor chain redacts any
key that looks like a credential (tokens, passwords, secrets, cookies,
identity numbers) and truncates long strings before rendering, so audit
lines never leak confirmation tokens or session secrets (Ley 1581 de 2012).

Usage:
    from ule.security.redaction import audit_logger

    audit_logger.info("deletion_confirmed", user_id=str(user_id), token=token)
    # token is rendered as "[REDACTED]"
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any

import structlog

SENSITIVE_FIELDS: tuple[str, ...] = (
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
    "numero_documento",
    "numerodocumento",
    "telefono",
    "credit_card",
    "cvv",
)

MAX_STRING_LENGTH = 100
MAX_DEPTH = 10


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(field in lowered for field in SENSITIVE_FIELDS)


def redact_sensitive_data(value: Any, depth: int = 0) -> Any:
    """Return a copy of `value` with sensitive keys masked."""
    if depth > MAX_DEPTH:
        return "[MAX_DEPTH]"
    if isinstance(value, str):
        if len(value) > MAX_STRING_LENGTH:
            return f"[REDACTED_STRING_{len(value)}_CHARS]"
        return value
    if isinstance(value, Mapping):
        return {
            k: "[REDACTED]" if _is_sensitive(str(k)) else redact_sensitive_data(v, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_sensitive_data(item, depth + 1) for item in value]
    return value


def redact_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor applying `redact_sensitive_data` to every field but the event name."""
    event = event_dict.pop("event", None)
    redacted = redact_sensitive_data(dict(event_dict))
    event_dict.clear()
    event_dict.update(redacted)
    if event is not None:
        event_dict["event"] = event
    return event_dict


audit_logger = structlog.get_logger("ule.audit")
