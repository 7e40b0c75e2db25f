"""Verified identity profile retrieval."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from ..config import KycConfig
from ..errors import STAGE_PROFILE, ProfileFetchError
from ..logging_config import get_logger
from ..timeout import with_timeout
from .responses import decode_body, describe_failure

logger = get_logger("oauth.profile")

DEFAULT_TEST_TENANT = "test-tenant"


def mock_profile(tenant_id: str | None = None) -> dict[str, Any]:
    """Canned profile returned in test mode."""
    return {
        "profile": {
            "fullName": "Test Tenant",
            "phone": "+919999999999",
            "email": "tenant@example.com",
            "dob": "1998-01-10",
            "address": "Test Address Lane, India",
            "documentType": "aadhaar",
            "documentNumberMasked": "XXXX-XXXX-1234",
        },
        "account": {
            "issuer": "digilocker",
            "verifiedAt": datetime.now(timezone.utc).isoformat(),
            "tenantId": tenant_id or DEFAULT_TEST_TENANT,
        },
    }


def identity_attributes(profile: dict[str, Any]) -> dict[str, Any]:
    """Return the block holding identity attributes.

    Providers either nest attributes under ``profile`` or return them at the
    top level.
    """
    nested = profile.get("profile")
    return nested if isinstance(nested, dict) else profile


def check_required_fields(profile: dict[str, Any], required: tuple[str, ...]) -> None:
    """Raise if any required attribute is absent or blank."""
    if not required:
        return

    attributes = identity_attributes(profile)
    missing = [
        field
        for field in required
        if attributes.get(field) is None or str(attributes.get(field)).strip() == ""
    ]
    if missing:
        raise ProfileFetchError(
            f"Profile missing required fields: {', '.join(missing)}"
        )


async def fetch_profile(
    access_token: str | None,
    config: KycConfig,
    *,
    timeout_ms: int | None = None,
    simulate_failure: str | None = None,
    tenant_id: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Fetch the verified profile for an access token.

    Args:
        access_token: Bearer token from the code exchange
        config: Resolved KYC configuration
        timeout_ms: Request deadline (defaults to ``config.timeout_ms``)
        simulate_failure: ``"profile"`` forces a failure
        tenant_id: Tenant echoed back in the test-mode profile
        client: Optional shared HTTP client

    Returns:
        dict: Provider-defined profile mapping

    Raises:
        ProfileFetchError: Missing token, simulated or upstream failure,
            or missing required fields
        UpstreamTimeoutError: If the profile request exceeds the deadline
    """
    if not access_token:
        raise ProfileFetchError("Missing access token", status_code=400)

    if simulate_failure == "profile":
        raise ProfileFetchError("Simulated profile failure")

    if config.test_mode:
        logger.debug("Test mode: returning mock profile")
        profile = mock_profile(tenant_id)
        check_required_fields(profile, config.profile_required_fields)
        return profile

    deadline_ms = timeout_ms or config.timeout_ms
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

    async def _get() -> httpx.Response:
        if client is not None:
            return await client.get(config.profile_endpoint, headers=headers)
        async with httpx.AsyncClient(timeout=deadline_ms / 1000) as http:
            return await http.get(config.profile_endpoint, headers=headers)

    logger.debug("Fetching profile from %s", config.profile_endpoint)
    try:
        response = await with_timeout(
            _get, deadline_ms, "Profile request timed out", stage=STAGE_PROFILE
        )
    except httpx.HTTPError as e:
        raise ProfileFetchError(f"Profile request failed: {e}") from e

    body = decode_body(response)
    if not response.is_success:
        raise ProfileFetchError(describe_failure("Profile fetch failed", response, body))

    if not isinstance(body, dict):
        raise ProfileFetchError("Profile fetch failed: unexpected payload")

    check_required_fields(body, config.profile_required_fields)
    return body
