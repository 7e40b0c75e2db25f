"""Structured audit events for the KYC pipeline.

Each event is one log record on the ``kyc_mcp_server.audit`` logger whose
message is ``KYC_AUDIT <EVENT> <json>``. The structured fields are also
attached to the record as ``audit_event`` and ``audit_fields`` for handlers
that ship records elsewhere.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

import msgspec

from .logging_config import get_logger

logger = get_logger("audit")

# Field names that may carry secrets; dropped before logging
_SECRET_FIELDS = frozenset(
    {
        "access_token",
        "accesstoken",
        "client_secret",
        "clientsecret",
        "refresh_token",
        "refreshtoken",
        "id_token",
        "idtoken",
    }
)


class AuditEvent(str, enum.Enum):
    """Audit event names emitted by the pipeline."""

    INITIATED = "INITIATED"
    TOKEN_EXCHANGE_SUCCESS = "TOKEN_EXCHANGE_SUCCESS"
    PROFILE_FETCH_SUCCESS = "PROFILE_FETCH_SUCCESS"
    WRITE_SUCCESS = "WRITE_SUCCESS"
    FAILURE_REASON = "FAILURE_REASON"


def redact(fields: dict[str, Any]) -> dict[str, Any]:
    """Drop fields whose names identify secrets."""
    return {
        key: value
        for key, value in fields.items()
        if key.lower().replace("-", "_") not in _SECRET_FIELDS
        and key.lower().replace("_", "") not in _SECRET_FIELDS
    }


def emit(event: AuditEvent, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one audit event.

    Args:
        event: Event name
        level: Logging level (warnings for caller faults, errors for failures)
        **fields: Event fields; secret-named fields are dropped
    """
    safe = redact(fields)
    logger.log(
        level,
        "KYC_AUDIT %s %s",
        event.value,
        msgspec.json.encode(safe).decode(),
        extra={"audit_event": event.value, "audit_fields": safe},
    )
