"""Tests for server setup, storage and MCP tools."""

import os
from unittest.mock import patch

import msgspec
import pytest
from cryptography.fernet import Fernet
from fastmcp import Client
from key_value.aio.stores.memory import MemoryStore
from key_value.aio.wrappers.encryption.fernet import FernetEncryptionWrapper

from kyc_mcp_server.config import KycConfig
from kyc_mcp_server.context import get_handlers, set_handlers
from kyc_mcp_server.errors import VerificationWriteError
from kyc_mcp_server.handlers import KycHandlers
from kyc_mcp_server.oauth.storage import create_storage, save_kyc_record
from kyc_mcp_server.server import _mask_secret, create_server, get_config


@pytest.fixture(autouse=True)
def reset_handlers():
    yield
    set_handlers(None)


class TestServerConfig:
    """Tests for server configuration helpers."""

    def test_default_port(self):
        """Test the default port."""
        with patch.dict(os.environ, {}, clear=True):
            assert get_config().port == 8000

    def test_port_precedence(self):
        """Test that PORT wins over FASTMCP_PORT."""
        with patch.dict(os.environ, {"PORT": "9000", "FASTMCP_PORT": "9100"}, clear=True):
            assert get_config().port == 9000

    def test_fastmcp_port(self):
        """Test FASTMCP_PORT when PORT is unset."""
        with patch.dict(os.environ, {"FASTMCP_PORT": "9100"}, clear=True):
            assert get_config().port == 9100

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "(not set)"),
            ("", "(not set)"),
            ("short", "****"),
            ("abcdefghijkl", "abcd****ijkl"),
        ],
    )
    def test_mask_secret(self, value, expected):
        """Test masking of secrets in the startup banner."""
        assert _mask_secret(value) == expected


class TestContext:
    """Tests for the handlers holder."""

    def test_uninitialized(self):
        """Test that reading unset handlers fails loudly."""
        set_handlers(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_handlers()

    def test_set_and_clear(self, test_config):
        """Test installing handlers and clearing them again."""
        handlers = KycHandlers(test_config)
        set_handlers(handlers)
        assert get_handlers() is handlers

        set_handlers(None)
        with pytest.raises(RuntimeError):
            get_handlers()


class TestCreateStorage:
    """Tests for the record store factory."""

    def test_memory_default(self):
        """Test the in-memory default."""
        assert isinstance(create_storage(KycConfig()), MemoryStore)

    def test_unknown_type(self):
        """Test that an unknown storage type is rejected."""
        with pytest.raises(ValueError, match="Unknown storage type: floppy"):
            create_storage(KycConfig(storage_type="floppy"))

    def test_encryption_wrapper(self):
        """Test that an encryption key wraps the store."""
        key = Fernet.generate_key().decode()
        store = create_storage(KycConfig(storage_encryption_key=key))
        assert isinstance(store, FernetEncryptionWrapper)

    @pytest.mark.asyncio
    async def test_encrypted_round_trip(self):
        """Test that a record written through the wrapper reads back intact."""
        key = Fernet.generate_key().decode()
        store = create_storage(KycConfig(storage_encryption_key=key))

        await save_kyc_record(store, "tenant-1", {"name": "Asha"}, collection="kyc")

        assert await store.get(key="tenant-1", collection="kyc") == {"name": "Asha"}


class TestSaveKycRecord:
    """Tests for save_kyc_record()."""

    @pytest.mark.asyncio
    async def test_writes_to_collection(self):
        """Test that the record lands in the given collection."""
        store = MemoryStore()
        await save_kyc_record(store, "tenant-1", {"verified": True}, collection="kyc-v2")

        assert await store.get(key="tenant-1", collection="kyc-v2") == {"verified": True}
        assert await store.get(key="tenant-1", collection="kyc") is None

    @pytest.mark.asyncio
    async def test_no_store(self):
        """Test that a missing store is a write-stage error."""
        with pytest.raises(VerificationWriteError) as exc_info:
            await save_kyc_record(None, "tenant-1", {}, collection="kyc")

        assert exc_info.value.stage == "write"
        assert exc_info.value.message == "No KYC store configured"

class TestCreateServer:
    """Tests for server creation and MCP tools."""

    def test_sets_handlers(self):
        """Test that creating the server installs handlers for the config."""
        config = KycConfig(test_mode=True)
        with patch.dict(os.environ, {}, clear=True):
            create_server("stdio", config)

        assert get_handlers().config is config

    @pytest.mark.asyncio
    async def test_tools_registered(self):
        """Test that the KYC tools are exposed over MCP."""
        with patch.dict(os.environ, {}, clear=True):
            mcp = create_server("stdio", KycConfig(test_mode=True))

        async with Client(mcp) as client:
            tools = await client.list_tools()

        assert {tool.name for tool in tools} >= {
            "kyc_initiate",
            "kyc_verify_callback",
            "kyc_test_flow",
        }

    @pytest.mark.asyncio
    async def test_test_flow_tool(self):
        """Test running the harness through the MCP tool."""
        with patch.dict(os.environ, {}, clear=True):
            mcp = create_server("stdio", KycConfig(test_mode=True))

        async with Client(mcp) as client:
            result = await client.call_tool("kyc_test_flow", {"tenant_id": "tenant-3"})

        payload = msgspec.json.decode(result.content[0].text)
        assert payload["success"] is True
        assert payload["stage"] == "write"
        assert payload["statusCode"] == 200
