"""KYC provider configuration.

The configuration is resolved once from environment-style settings into an
immutable :class:`KycConfig` and passed explicitly into the pipeline. Nothing
below the server layer reads ``os.environ`` directly.

Environment variables:
    DIGILOCKER_CLIENT_ID / CLIENT_ID: OAuth client identifier
    DIGILOCKER_CLIENT_SECRET / CLIENT_SECRET: OAuth client secret
    DIGILOCKER_REDIRECT_URI / REDIRECT_URI: Registered redirect URI
    DIGILOCKER_AUTHORIZATION_ENDPOINT / AUTHORIZATION_ENDPOINT: Authorize URL
    DIGILOCKER_TOKEN_ENDPOINT / TOKEN_ENDPOINT: Token URL
    DIGILOCKER_PROFILE_ENDPOINT / PROFILE_ENDPOINT: Profile (userinfo) URL
    DIGILOCKER_SCOPES / SCOPES: Requested scopes (default: openid)
    KYC_API_TIMEOUT_MS: Outbound call timeout in ms (default: 12000)
    KYC_STATE_TTL_SECONDS: State token lifetime in seconds (default: 600)
    KYC_TEST_MODE: Replace provider calls with canned responses
    KYC_TEST_IF_CONFIG_MISSING: Also enables test mode
    CONTEXT: Deploy context; "production" always disables test mode
    DIGILOCKER_TEST_REDIRECT_TARGET: Callback page used by test-mode initiate
    KYC_PROFILE_REQUIRED_FIELDS: Comma-separated profile fields to require
    KYC_PROVIDER_NAME: Provider label stored with verified records
    KYC_STORAGE_TYPE: Record store backend, "memory" or "redis" (default: memory)
    KYC_STORAGE_COLLECTION: Collection holding verified records (default: kyc)
    REDIS_URL: Redis connection URL for the redis backend
    STORAGE_ENCRYPTION_KEY: Fernet key or key material for records at rest
"""

from __future__ import annotations

import os
from collections.abc import Mapping

import msgspec

DEFAULT_TIMEOUT_MS = 12000
DEFAULT_STATE_TTL_SECONDS = 600
DEFAULT_SCOPES = "openid"
DEFAULT_PROVIDER_NAME = "DigiLocker"
DEFAULT_TEST_REDIRECT_TARGET = "http://localhost:8000/kyc/callback"
DEFAULT_STORAGE_TYPE = "memory"
DEFAULT_STORAGE_COLLECTION = "kyc"
DEFAULT_REDIS_URL = "redis://localhost:6379"

_TRUTHY = {"1", "true", "yes", "on"}


class KycConfig(msgspec.Struct, frozen=True, kw_only=True):
    """Immutable snapshot of OAuth client settings."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    authorization_endpoint: str = ""
    token_endpoint: str = ""
    profile_endpoint: str = ""
    scopes: str = DEFAULT_SCOPES
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
    test_mode: bool = False
    test_redirect_target: str = DEFAULT_TEST_REDIRECT_TARGET
    profile_required_fields: tuple[str, ...] = ()
    provider_name: str = DEFAULT_PROVIDER_NAME
    storage_type: str = DEFAULT_STORAGE_TYPE
    storage_collection: str = DEFAULT_STORAGE_COLLECTION
    redis_url: str = DEFAULT_REDIS_URL
    storage_encryption_key: str = ""

    def __repr__(self) -> str:
        secret = "****" if self.client_secret else "(not set)"
        return (
            f"KycConfig(client_id={self.client_id!r}, client_secret={secret}, "
            f"redirect_uri={self.redirect_uri!r}, test_mode={self.test_mode})"
        )


def _first(environ: Mapping[str, str], *keys: str, default: str = "") -> str:
    for key in keys:
        value = environ.get(key, "").strip()
        if value:
            return value
    return default


def _as_int(value: str, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


def is_test_mode(environ: Mapping[str, str]) -> bool:
    """Detect test mode from the environment.

    A production deploy context always wins; otherwise either
    ``KYC_TEST_MODE`` or ``KYC_TEST_IF_CONFIG_MISSING`` enables it.
    """
    if environ.get("CONTEXT", "").strip().lower() == "production":
        return False
    return _as_bool(environ.get("KYC_TEST_MODE", "")) or _as_bool(
        environ.get("KYC_TEST_IF_CONFIG_MISSING", "")
    )


def resolve_config(environ: Mapping[str, str] | None = None) -> KycConfig:
    """Build a :class:`KycConfig` from environment-style settings.

    Never raises: missing values become empty strings and unparsable numbers
    fall back to their defaults. Whether the result is usable for a given
    stage is checked by the caller.

    Args:
        environ: Settings mapping (defaults to ``os.environ``)

    Returns:
        KycConfig: Frozen configuration snapshot
    """
    env = os.environ if environ is None else environ

    required_fields = tuple(
        field.strip()
        for field in env.get("KYC_PROFILE_REQUIRED_FIELDS", "").split(",")
        if field.strip()
    )

    return KycConfig(
        client_id=_first(env, "DIGILOCKER_CLIENT_ID", "CLIENT_ID"),
        client_secret=_first(env, "DIGILOCKER_CLIENT_SECRET", "CLIENT_SECRET"),
        redirect_uri=_first(env, "DIGILOCKER_REDIRECT_URI", "REDIRECT_URI"),
        authorization_endpoint=_first(
            env, "DIGILOCKER_AUTHORIZATION_ENDPOINT", "AUTHORIZATION_ENDPOINT"
        ),
        token_endpoint=_first(env, "DIGILOCKER_TOKEN_ENDPOINT", "TOKEN_ENDPOINT"),
        profile_endpoint=_first(
            env, "DIGILOCKER_PROFILE_ENDPOINT", "PROFILE_ENDPOINT"
        ),
        scopes=_first(env, "DIGILOCKER_SCOPES", "SCOPES", default=DEFAULT_SCOPES),
        timeout_ms=_as_int(env.get("KYC_API_TIMEOUT_MS", ""), DEFAULT_TIMEOUT_MS),
        state_ttl_seconds=_as_int(
            env.get("KYC_STATE_TTL_SECONDS", ""), DEFAULT_STATE_TTL_SECONDS
        ),
        test_mode=is_test_mode(env),
        test_redirect_target=_first(
            env,
            "DIGILOCKER_TEST_REDIRECT_TARGET",
            default=DEFAULT_TEST_REDIRECT_TARGET,
        ),
        profile_required_fields=required_fields,
        provider_name=_first(
            env, "KYC_PROVIDER_NAME", default=DEFAULT_PROVIDER_NAME
        ),
        storage_type=_first(
            env, "KYC_STORAGE_TYPE", default=DEFAULT_STORAGE_TYPE
        ).lower(),
        storage_collection=_first(
            env, "KYC_STORAGE_COLLECTION", default=DEFAULT_STORAGE_COLLECTION
        ),
        redis_url=_first(env, "REDIS_URL", default=DEFAULT_REDIS_URL),
        storage_encryption_key=_first(env, "STORAGE_ENCRYPTION_KEY"),
    )


def missing_callback_settings(config: KycConfig) -> list[str]:
    """Return the names of unset settings needed for a live callback."""
    required = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "redirect_uri": config.redirect_uri,
        "token_endpoint": config.token_endpoint,
        "profile_endpoint": config.profile_endpoint,
    }
    return [name for name, value in required.items() if not value]


def missing_initiate_settings(config: KycConfig) -> list[str]:
    """Return the names of unset settings needed to build an authorize URL."""
    required = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "authorization_endpoint": config.authorization_endpoint,
    }
    return [name for name, value in required.items() if not value]
