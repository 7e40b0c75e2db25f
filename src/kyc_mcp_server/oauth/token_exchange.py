"""Authorization code exchange against the identity provider token endpoint."""

from __future__ import annotations

from typing import Any

import httpx
import msgspec

from ..config import KycConfig
from ..errors import STAGE_TOKEN, TokenExchangeError
from ..logging_config import get_logger
from ..timeout import with_timeout
from .responses import decode_body, describe_failure

logger = get_logger("oauth.token_exchange")

INVALID_CODE_SENTINEL = "INVALID_CODE"
MOCK_ACCESS_TOKEN = "mock_access_token_123"
MOCK_TRANSACTION_ID = "mock_txn_kyc_001"


class TokenPayload(msgspec.Struct, kw_only=True):
    """Token endpoint response.

    Lives for one pipeline run only. ``repr`` masks the access token so the
    payload is safe to drop into a log line by accident.
    """

    access_token: str = ""
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    transaction_id: str | None = None

    def __repr__(self) -> str:
        return (
            f"TokenPayload(access_token=<redacted>, token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r}, scope={self.scope!r})"
        )

    def metadata(self) -> dict[str, Any]:
        """Token metadata safe to return to callers (never the token)."""
        return {
            "tokenType": self.token_type,
            "expiresIn": self.expires_in,
            "scope": self.scope,
        }


def mock_token_payload(config: KycConfig) -> TokenPayload:
    """Canned token returned in test mode."""
    return TokenPayload(
        access_token=MOCK_ACCESS_TOKEN,
        token_type="Bearer",
        expires_in=3600,
        scope=config.scopes,
        transaction_id=MOCK_TRANSACTION_ID,
    )


def _parse_payload(data: Any) -> TokenPayload:
    if not isinstance(data, dict) or not data.get("access_token"):
        raise TokenExchangeError("Token exchange failed: access_token missing")

    # Some providers name the transaction id txn_id
    if "transaction_id" not in data and "txn_id" in data:
        data = {**data, "transaction_id": data["txn_id"]}

    try:
        return msgspec.convert(data, TokenPayload, strict=False)
    except msgspec.ValidationError as e:
        raise TokenExchangeError(
            f"Token exchange failed: malformed token response ({e})"
        ) from e


async def exchange_code(
    code: str | None,
    config: KycConfig,
    *,
    timeout_ms: int | None = None,
    simulate_failure: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> TokenPayload:
    """Exchange an authorization code for an access token.

    In test mode no request is made: any code other than ``INVALID_CODE``
    (case-insensitive) yields a fixed mock token.

    Args:
        code: Authorization code returned to the redirect URI
        config: Resolved KYC configuration
        timeout_ms: Request deadline (defaults to ``config.timeout_ms``)
        simulate_failure: ``"token"`` forces a failure before any other branch
        client: Optional shared HTTP client

    Returns:
        TokenPayload: Parsed token response

    Raises:
        TokenExchangeError: Invalid code, simulated or upstream failure
        UpstreamTimeoutError: If the token request exceeds the deadline
    """
    if not code or not str(code).strip():
        raise TokenExchangeError("Invalid authorization code", status_code=400)

    if simulate_failure == "token":
        raise TokenExchangeError("Simulated token failure")

    if config.test_mode:
        if str(code).upper() == INVALID_CODE_SENTINEL:
            raise TokenExchangeError("Invalid authorization code")
        logger.debug("Test mode: returning mock token payload")
        return mock_token_payload(config)

    deadline_ms = timeout_ms or config.timeout_ms
    form = {
        "grant_type": "authorization_code",
        "code": str(code),
        "redirect_uri": config.redirect_uri,
        "client_id": config.client_id,
        "client_secret": config.client_secret,
    }

    async def _post() -> httpx.Response:
        if client is not None:
            return await client.post(config.token_endpoint, data=form)
        async with httpx.AsyncClient(timeout=deadline_ms / 1000) as http:
            return await http.post(config.token_endpoint, data=form)

    logger.debug("Exchanging authorization code at %s", config.token_endpoint)
    try:
        response = await with_timeout(
            _post, deadline_ms, "Token request timed out", stage=STAGE_TOKEN
        )
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"Token request failed: {e}") from e

    body = decode_body(response)
    if not response.is_success:
        raise TokenExchangeError(
            describe_failure("Token exchange failed", response, body)
        )

    return _parse_payload(body)
