"""Error types for the KYC verification pipeline.

Every error carries the pipeline stage it belongs to and an HTTP-equivalent
status code, both set where the error is raised. The orchestrator reads
these attributes instead of inspecting message text.
"""

from __future__ import annotations

from typing import Any, Literal

Stage = Literal["token", "profile", "write"]

STAGE_TOKEN: Stage = "token"
STAGE_PROFILE: Stage = "profile"
STAGE_WRITE: Stage = "write"


class KycError(Exception):
    """Base class for all KYC pipeline failures."""

    default_stage: Stage = STAGE_WRITE

    def __init__(
        self,
        message: str,
        *,
        stage: Stage | None = None,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage: Stage = stage or self.default_stage
        self.status_code = status_code
        # Extra audit fields; never secrets
        self.details = details or {}


class ConfigurationError(KycError):
    """Required OAuth settings are missing (operator fault)."""

    default_stage = STAGE_TOKEN


class TokenExchangeError(KycError):
    """Authorization code could not be exchanged for an access token."""

    default_stage = STAGE_TOKEN


class ProfileFetchError(KycError):
    """Verified profile could not be retrieved."""

    default_stage = STAGE_PROFILE


class VerificationWriteError(KycError):
    """Verified result could not be handed to the store."""

    default_stage = STAGE_WRITE


class UpstreamTimeoutError(KycError):
    """An outbound provider call exceeded its deadline."""
