"""OAuth module for the KYC MCP server.

This module provides the identity provider side of the KYC pipeline:

- **Authorization**: builds the provider authorize URL for a state token
- **Token exchange**: trades an authorization code for an access token
- **Profile fetch**: retrieves the verified identity profile
- **Storage**: key-value backend receiving verified records

Test mode:
    When ``KycConfig.test_mode`` is set, token exchange and profile fetch
    return canned payloads without contacting the provider. The code
    ``INVALID_CODE`` (any case) still fails, so both branches stay testable.

Components:
    - build_authorization_url: Authorize URL for the authorization-code flow
    - exchange_code / TokenPayload: Code exchange client and its result
    - fetch_profile: Profile fetch client
    - create_storage / save_kyc_record: Record store factory and writer
"""

from .authorization import build_authorization_url, build_test_redirect_url
from .profile import fetch_profile
from .storage import create_storage, save_kyc_record
from .token_exchange import TokenPayload, exchange_code

__all__ = [
    # Authorization
    "build_authorization_url",
    "build_test_redirect_url",
    # Token exchange
    "TokenPayload",
    "exchange_code",
    # Profile
    "fetch_profile",
    # Storage
    "create_storage",
    "save_kyc_record",
]
