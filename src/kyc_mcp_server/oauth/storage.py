"""Record store for verified KYC results.

Verified records are written once per successful live verification, keyed by
tenant id, and never read back by the pipeline. The backend and its settings
come from :class:`~kyc_mcp_server.config.KycConfig`:

- ``memory``: in-process store, lost on restart (development and tests)
- ``redis``: persistent store at ``config.redis_url``

A non-empty ``config.storage_encryption_key`` wraps either backend with
Fernet encryption so identity attributes are encrypted at rest.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..config import KycConfig
from ..errors import VerificationWriteError
from ..logging_config import get_logger

if TYPE_CHECKING:
    from key_value.aio.protocols.key_value import AsyncKeyValue

logger = get_logger("oauth.storage")

STORAGE_TYPES = ("memory", "redis")


def _backend(config: KycConfig) -> "AsyncKeyValue":
    if config.storage_type == "memory":
        from key_value.aio.stores.memory import MemoryStore

        return MemoryStore()

    if config.storage_type == "redis":
        from key_value.aio.stores.redis import RedisStore

        return RedisStore(url=config.redis_url)

    raise ValueError(
        f"Unknown storage type: {config.storage_type} "
        f"(expected one of: {', '.join(STORAGE_TYPES)})"
    )


def _encrypted(store: "AsyncKeyValue", key: str) -> "AsyncKeyValue":
    from cryptography.fernet import Fernet
    from key_value.aio.wrappers.encryption.fernet import FernetEncryptionWrapper

    # A valid Fernet key is used as-is, anything else is key material
    try:
        fernet = Fernet(key.encode())
    except ValueError:
        return FernetEncryptionWrapper(store, source_material=key)
    return FernetEncryptionWrapper(store, fernet=fernet)


def create_storage(config: KycConfig) -> "AsyncKeyValue":
    """Create the record store described by the configuration.

    Args:
        config: Resolved KYC configuration

    Returns:
        AsyncKeyValue: Store receiving verified records

    Raises:
        ValueError: If ``config.storage_type`` is not a known backend
    """
    encrypted = bool(config.storage_encryption_key)
    logger.info(
        "Creating KYC record store: type=%s, collection=%s, encrypted=%s",
        config.storage_type,
        config.storage_collection,
        encrypted,
    )

    store = _backend(config)
    if encrypted:
        store = _encrypted(store, config.storage_encryption_key)
    return store


async def save_kyc_record(
    store: "AsyncKeyValue | None",
    tenant_id: str,
    record: dict[str, Any],
    *,
    collection: str,
) -> None:
    """Persist a verified record for a tenant, replacing any earlier one.

    Raises:
        VerificationWriteError: If no store is configured. Backend errors
            propagate unchanged and are attributed to the write stage by
            the caller.
    """
    if store is None:
        raise VerificationWriteError("No KYC store configured")
    await store.put(key=tenant_id, value=record, collection=collection)
    logger.debug("Stored KYC record: tenant_id=%s collection=%s", tenant_id, collection)
