"""OAuth authorization URL construction."""

from __future__ import annotations

from urllib.parse import urlencode

from ..config import KycConfig

MOCK_AUTH_CODE = "MOCK_AUTH_CODE"


def build_authorization_url(config: KycConfig, state: str) -> str:
    """Construct the provider authorize URL for an authorization-code flow.

    Args:
        config: Resolved KYC configuration
        state: Anti-CSRF state value bound to this flow

    Returns:
        Full authorization URL
    """
    params = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "scope": config.scopes,
        "state": state,
    }
    separator = "&" if "?" in config.authorization_endpoint else "?"
    return f"{config.authorization_endpoint}{separator}{urlencode(params)}"


def build_test_redirect_url(config: KycConfig, state: str) -> str:
    """URL that sends the browser straight back with a mock code (test mode)."""
    params = {"code": MOCK_AUTH_CODE, "state": state}
    separator = "&" if "?" in config.test_redirect_target else "?"
    return f"{config.test_redirect_target}{separator}{urlencode(params)}"
