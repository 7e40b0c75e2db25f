"""Process-wide holder for the KYC request handlers.

`create_server()` builds one `KycHandlers` per process (configuration, record
store and pipeline) and installs it here. The Starlette routes and the MCP
tools both dispatch through `get_handlers()`, so HTTP callers and MCP clients
run against the same configuration and store. Tests install their own
handlers and clear them with `set_handlers(None)`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .handlers import KycHandlers

_handlers: "KycHandlers | None" = None


def set_handlers(handlers: "KycHandlers | None") -> None:
    """Set the handlers for global access.

    Args:
        handlers: The KycHandlers instance to store (None clears it)
    """
    global _handlers
    _handlers = handlers


def get_handlers() -> "KycHandlers":
    """Get the handlers.

    Returns:
        The KycHandlers instance

    Raises:
        RuntimeError: If handlers have not been initialized
    """
    if _handlers is None:
        raise RuntimeError("KYC handlers not initialized")
    return _handlers
