"""Shared fixtures for KYC pipeline tests."""

from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from kyc_mcp_server.config import KycConfig

TOKEN_URL = "https://provider.example.com/oauth2/token"
PROFILE_URL = "https://provider.example.com/oauth2/user"
AUTHORIZE_URL = "https://provider.example.com/oauth2/authorize"


@pytest.fixture
def test_config() -> KycConfig:
    """Test-mode configuration with no provider settings."""
    return KycConfig(test_mode=True)


@pytest.fixture
def live_config() -> KycConfig:
    """Fully configured live-mode configuration."""
    return KycConfig(
        client_id="client-123",
        client_secret="super-secret-value",
        redirect_uri="https://app.example.com/kyc/callback",
        authorization_endpoint=AUTHORIZE_URL,
        token_endpoint=TOKEN_URL,
        profile_endpoint=PROFILE_URL,
        scopes="openid",
    )


def form_fields(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body into single values."""
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


@pytest.fixture
def provider_client() -> Callable[..., httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by ``handler``."""

    def _build(handler: Callable) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build


def default_provider(request: httpx.Request) -> httpx.Response:
    """Well-behaved provider: issues a token and returns a profile."""
    if request.url.path.endswith("/token"):
        return httpx.Response(
            200,
            json={
                "access_token": "live-access-token",
                "token_type": "Bearer",
                "expires_in": 3600,
                "scope": "openid",
                "txn_id": "txn-42",
            },
        )
    return httpx.Response(
        200,
        json={
            "name": "Asha Rao",
            "dob": "1990-05-01",
            "permanentAddress": "12 MG Road, Pune",
        },
    )
