"""Tests for KYC configuration resolution."""

import os
from unittest.mock import patch

import msgspec
import pytest

from kyc_mcp_server.config import (
    DEFAULT_STATE_TTL_SECONDS,
    DEFAULT_TIMEOUT_MS,
    KycConfig,
    is_test_mode,
    missing_callback_settings,
    missing_initiate_settings,
    resolve_config,
)


class TestResolveConfig:
    """Tests for resolve_config()."""

    def test_empty_environment_yields_empty_strings(self):
        """Test that missing values become empty strings, never errors."""
        config = resolve_config({})

        assert config.client_id == ""
        assert config.client_secret == ""
        assert config.redirect_uri == ""
        assert config.authorization_endpoint == ""
        assert config.token_endpoint == ""
        assert config.profile_endpoint == ""
        assert config.scopes == "openid"
        assert config.timeout_ms == DEFAULT_TIMEOUT_MS
        assert config.state_ttl_seconds == DEFAULT_STATE_TTL_SECONDS
        assert config.test_mode is False
        assert config.profile_required_fields == ()

    def test_provider_prefixed_keys(self):
        """Test reading the provider-prefixed keys."""
        config = resolve_config(
            {
                "DIGILOCKER_CLIENT_ID": "dl-id",
                "DIGILOCKER_CLIENT_SECRET": "dl-secret",
                "DIGILOCKER_REDIRECT_URI": "https://app/cb",
                "DIGILOCKER_AUTHORIZATION_ENDPOINT": "https://idp/authorize",
                "DIGILOCKER_TOKEN_ENDPOINT": "https://idp/token",
                "DIGILOCKER_PROFILE_ENDPOINT": "https://idp/user",
                "DIGILOCKER_SCOPES": "openid profile",
            }
        )

        assert config.client_id == "dl-id"
        assert config.client_secret == "dl-secret"
        assert config.redirect_uri == "https://app/cb"
        assert config.authorization_endpoint == "https://idp/authorize"
        assert config.token_endpoint == "https://idp/token"
        assert config.profile_endpoint == "https://idp/user"
        assert config.scopes == "openid profile"

    def test_generic_keys_as_fallback(self):
        """Test that generic keys are used when prefixed keys are absent."""
        config = resolve_config({"CLIENT_ID": "generic-id", "TOKEN_ENDPOINT": "https://t"})

        assert config.client_id == "generic-id"
        assert config.token_endpoint == "https://t"

    def test_prefixed_key_wins(self):
        """Test that the prefixed key takes precedence over the generic one."""
        config = resolve_config({"DIGILOCKER_CLIENT_ID": "dl", "CLIENT_ID": "generic"})
        assert config.client_id == "dl"

    def test_numeric_settings(self):
        """Test timeout and TTL parsing."""
        config = resolve_config(
            {"KYC_API_TIMEOUT_MS": "5000", "KYC_STATE_TTL_SECONDS": "120"}
        )
        assert config.timeout_ms == 5000
        assert config.state_ttl_seconds == 120

    @pytest.mark.parametrize("value", ["abc", "", "-5", "0"])
    def test_invalid_numbers_fall_back_to_defaults(self, value):
        """Test that unparsable or non-positive numbers use defaults."""
        config = resolve_config(
            {"KYC_API_TIMEOUT_MS": value, "KYC_STATE_TTL_SECONDS": value}
        )
        assert config.timeout_ms == DEFAULT_TIMEOUT_MS
        assert config.state_ttl_seconds == DEFAULT_STATE_TTL_SECONDS

    def test_required_profile_fields(self):
        """Test parsing the comma-separated required field list."""
        config = resolve_config({"KYC_PROFILE_REQUIRED_FIELDS": "name, dob,,address "})
        assert config.profile_required_fields == ("name", "dob", "address")

    def test_storage_defaults(self):
        """Test the record store defaults."""
        config = resolve_config({})
        assert config.storage_type == "memory"
        assert config.storage_collection == "kyc"
        assert config.redis_url == "redis://localhost:6379"
        assert config.storage_encryption_key == ""

    def test_storage_settings(self):
        """Test reading the record store settings."""
        config = resolve_config(
            {
                "KYC_STORAGE_TYPE": "Redis",
                "KYC_STORAGE_COLLECTION": "kyc-records",
                "REDIS_URL": "redis://cache:6380/2",
                "STORAGE_ENCRYPTION_KEY": "material",
            }
        )
        assert config.storage_type == "redis"
        assert config.storage_collection == "kyc-records"
        assert config.redis_url == "redis://cache:6380/2"
        assert config.storage_encryption_key == "material"
        assert "material" not in repr(config)

    def test_reads_os_environ_by_default(self):
        """Test that os.environ is used when no mapping is passed."""
        with patch.dict(
            os.environ,
            {"DIGILOCKER_CLIENT_ID": "from-env", "KYC_TEST_MODE": "true"},
            clear=True,
        ):
            config = resolve_config()

        assert config.client_id == "from-env"
        assert config.test_mode is True

    def test_config_is_immutable(self):
        """Test that the configuration cannot be mutated."""
        config = resolve_config({})
        with pytest.raises(AttributeError):
            config.client_id = "changed"

    def test_repr_masks_secret(self):
        """Test that repr never shows the client secret."""
        config = KycConfig(client_id="id", client_secret="very-secret")
        assert "very-secret" not in repr(config)

    def test_config_is_msgspec_struct(self):
        """Test that the config is a msgspec Struct."""
        assert isinstance(resolve_config({}), msgspec.Struct)


class TestTestMode:
    """Tests for test mode detection."""

    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", "on"])
    def test_truthy_flag(self, value):
        """Test truthy spellings of KYC_TEST_MODE."""
        assert is_test_mode({"KYC_TEST_MODE": value}) is True

    @pytest.mark.parametrize("value", ["false", "0", "", "no"])
    def test_falsy_flag(self, value):
        """Test falsy spellings of KYC_TEST_MODE."""
        assert is_test_mode({"KYC_TEST_MODE": value}) is False

    def test_independent_of_credentials(self):
        """Test that credentials do not affect test mode."""
        config = resolve_config(
            {"KYC_TEST_MODE": "true", "CLIENT_ID": "id", "CLIENT_SECRET": "secret"}
        )
        assert config.test_mode is True

    def test_config_missing_flag(self):
        """Test KYC_TEST_IF_CONFIG_MISSING also enables test mode."""
        assert is_test_mode({"KYC_TEST_IF_CONFIG_MISSING": "true"}) is True

    def test_production_context_disables(self):
        """Test that a production deploy never runs in test mode."""
        assert is_test_mode({"KYC_TEST_MODE": "true", "CONTEXT": "production"}) is False


class TestMissingSettings:
    """Tests for stage usability checks."""

    def test_complete_live_config(self, live_config):
        """Test that a complete configuration has nothing missing."""
        assert missing_callback_settings(live_config) == []
        assert missing_initiate_settings(live_config) == []

    def test_missing_callback_settings(self):
        """Test listing the settings a live callback needs."""
        config = KycConfig(client_id="id", token_endpoint="https://t")
        assert missing_callback_settings(config) == [
            "client_secret",
            "redirect_uri",
            "profile_endpoint",
        ]

    def test_missing_initiate_settings(self):
        """Test listing the settings initiate needs."""
        config = KycConfig(client_id="id", redirect_uri="https://r")
        assert missing_initiate_settings(config) == ["authorization_endpoint"]
