"""KYC verification pipeline.

Runs one verification end to end::

    INITIATED -> STATE_CHECK -> TOKEN_EXCHANGE -> PROFILE_FETCH -> WRITE -> DONE

Every phase is terminal on failure. The result always names the last phase
attempted (``token``, ``profile`` or ``write``) so callers can tell "never
got a token" apart from "got a token but the profile or write failed".
Failures are logged exactly once, here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import httpx
import msgspec

from .audit import AuditEvent, emit
from .config import KycConfig, missing_callback_settings
from .errors import (
    STAGE_PROFILE,
    STAGE_TOKEN,
    STAGE_WRITE,
    ConfigurationError,
    KycError,
    Stage,
    VerificationWriteError,
)
from .logging_config import get_logger
from .oauth.profile import fetch_profile, identity_attributes
from .oauth.storage import save_kyc_record
from .oauth.token_exchange import TokenPayload, exchange_code
from .state import validate_state

if TYPE_CHECKING:
    from key_value.aio.protocols.key_value import AsyncKeyValue

logger = get_logger("pipeline")

SIMULATED_STAGES = ("token", "profile", "write")


class VerificationRequest(msgspec.Struct, kw_only=True):
    """Input to a single pipeline run."""

    tenant_id: str
    code: str | None = None
    state: str | None = None
    expected_state: str | None = None
    # Epoch milliseconds as sent by the caller; validated, not trusted
    state_created_at: Any = None
    simulate_failure: str | None = None


class VerificationResult(msgspec.Struct, kw_only=True):
    """Staged pipeline outcome plus its HTTP-equivalent status."""

    success: bool
    stage: Stage
    message: str
    data: dict[str, Any] = msgspec.field(default_factory=dict)
    status_code: int = 200

    def to_dict(self) -> dict[str, Any]:
        """Render the caller-facing payload."""
        return {
            "success": self.success,
            "stage": self.stage,
            "message": self.message,
            "data": self.data,
        }


def _first_text(attributes: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = attributes.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def build_kyc_record(
    profile: dict[str, Any], token: TokenPayload, provider_name: str
) -> dict[str, Any]:
    """Build the record handed to the store for a verified tenant."""
    attributes = identity_attributes(profile)
    return {
        "verified": True,
        "verifiedBy": provider_name,
        "verifiedAt": datetime.now(timezone.utc).isoformat(),
        "name": _first_text(attributes, "fullName", "name"),
        "dob": _first_text(attributes, "dob", "dateOfBirth"),
        "address": _first_text(attributes, "address", "permanentAddress"),
        "providerTxnId": token.transaction_id or "",
    }


class KycPipeline:
    """Sequences state check, code exchange, profile fetch and write.

    Args:
        config: Resolved KYC configuration
        store: Key-value store receiving verified records (live mode only)
        client: Optional shared HTTP client for provider calls
    """

    def __init__(
        self,
        config: KycConfig,
        store: "AsyncKeyValue | None" = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.client = client

    def _fail(
        self,
        tenant_id: str,
        stage: Stage,
        message: str,
        status_code: int = 500,
        **details: Any,
    ) -> VerificationResult:
        level = logging.WARNING if status_code < 500 else logging.ERROR
        emit(
            AuditEvent.FAILURE_REASON,
            level,
            tenantId=tenant_id,
            stage=stage,
            reason=message,
            statusCode=status_code,
            **details,
        )
        return VerificationResult(
            success=False,
            stage=stage,
            message=message,
            data={"tenantId": tenant_id},
            status_code=status_code,
        )

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        """Run the pipeline for one verification request.

        Never raises for pipeline failures; they come back as unsuccessful
        results carrying the stage and status code.
        """
        config = self.config
        tenant_id = request.tenant_id
        simulate = request.simulate_failure

        emit(
            AuditEvent.INITIATED,
            tenantId=tenant_id,
            testMode=config.test_mode,
            simulateFailure=simulate,
        )

        state_check = validate_state(
            request.state,
            request.expected_state,
            request.state_created_at,
            ttl_seconds=config.state_ttl_seconds,
        )
        if not state_check.ok:
            return self._fail(tenant_id, STAGE_TOKEN, state_check.reason, 400)

        if not request.code or not str(request.code).strip():
            return self._fail(tenant_id, STAGE_TOKEN, "Invalid authorization code", 400)

        phase: Stage = STAGE_TOKEN
        try:
            if not config.test_mode:
                missing = missing_callback_settings(config)
                if missing:
                    raise ConfigurationError(
                        "OAuth config missing", details={"missingSettings": missing}
                    )

            token = await exchange_code(
                request.code,
                config,
                simulate_failure=simulate,
                client=self.client,
            )
            emit(
                AuditEvent.TOKEN_EXCHANGE_SUCCESS,
                tenantId=tenant_id,
                hasAccessToken=bool(token.access_token),
                tokenType=token.token_type,
                expiresIn=token.expires_in,
            )

            phase = STAGE_PROFILE
            profile = await fetch_profile(
                token.access_token,
                config,
                simulate_failure=simulate,
                tenant_id=tenant_id,
                client=self.client,
            )
            emit(
                AuditEvent.PROFILE_FETCH_SUCCESS,
                tenantId=tenant_id,
                profileFields=sorted(profile.keys()),
            )

            phase = STAGE_WRITE
            if simulate == "write":
                raise VerificationWriteError("Simulated write failure")

            record = None
            if not config.test_mode:
                record = build_kyc_record(profile, token, config.provider_name)
                await save_kyc_record(
                    self.store, tenant_id, record, collection=config.storage_collection
                )
                emit(AuditEvent.WRITE_SUCCESS, tenantId=tenant_id)
        except KycError as e:
            return self._fail(
                tenant_id, e.stage, e.message, e.status_code, **e.details
            )
        except Exception as e:
            # Unmodelled failures belong to the phase that was running
            logger.debug("Unexpected %s failure", phase, exc_info=True)
            return self._fail(tenant_id, phase, str(e) or "Unexpected failure", 500)

        data: dict[str, Any] = {
            "tenantId": tenant_id,
            "testMode": config.test_mode,
            "tokenMeta": token.metadata(),
            "profile": profile,
        }
        if record is not None:
            data["kyc"] = record

        message = (
            "KYC flow test completed" if config.test_mode else "KYC verification completed"
        )
        return VerificationResult(success=True, stage=STAGE_WRITE, message=message, data=data)
