"""FastMCP server setup and lifecycle management for the KYC MCP server."""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

import msgspec
import typer
from dotenv import load_dotenv
from fastmcp import FastMCP

from .config import KycConfig, missing_callback_settings, resolve_config
from .context import get_handlers, set_handlers
from .handlers import KycHandlers
from .logging_config import get_logger, setup_logging
from .oauth.storage import STORAGE_TYPES, create_storage
from .routes import register_kyc_routes
from .tools import register_kyc_tools

load_dotenv()
setup_logging()

logger = get_logger("server")


class ServerConfig(msgspec.Struct, kw_only=True):
    """Server configuration."""

    # HTTP server settings
    port: int = 8000


class AppContext(msgspec.Struct, kw_only=True):
    """Application context shared across requests."""

    handlers: KycHandlers
    config: ServerConfig


def get_config() -> ServerConfig:
    """Load configuration from environment variables."""
    # Cloud platform standard: PORT first, then FASTMCP_PORT, then default
    port = int(os.getenv("PORT") or os.getenv("FASTMCP_PORT") or "8000")

    logger.debug("Loaded config: port=%d", port)

    return ServerConfig(port=port)


@asynccontextmanager
async def app_lifespan(mcp: FastMCP) -> AsyncIterator[AppContext]:
    """Expose the shared handlers to MCP requests for the server lifetime."""
    logger.info("Starting KYC MCP Server")
    handlers = get_handlers()

    ctx = AppContext(handlers=handlers, config=get_config())

    try:
        logger.info(
            "Server initialization complete: test_mode=%s", handlers.config.test_mode
        )
        yield ctx
    finally:
        logger.info("KYC MCP Server shutdown complete")


def _mask_secret(value: str | None) -> str:
    """Mask sensitive values for display."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def _print_config(transport: str, port: int, kyc_config: KycConfig) -> None:
    """Print server configuration at startup."""
    sections: list[tuple[str, list[tuple[str, str]]]] = [
        (
            "Server",
            [
                ("Transport", transport),
                ("Port", str(port)),
                ("Log Level", os.getenv("LOG_LEVEL", "INFO")),
            ],
        ),
        (
            "Identity Provider",
            [
                ("Test Mode", "enabled" if kyc_config.test_mode else "disabled"),
                ("Client ID", kyc_config.client_id or "(not set)"),
                ("Client Secret", _mask_secret(kyc_config.client_secret)),
                ("Redirect URI", kyc_config.redirect_uri or "(not set)"),
                ("Authorize URL", kyc_config.authorization_endpoint or "(not set)"),
                ("Token URL", kyc_config.token_endpoint or "(not set)"),
                ("Profile URL", kyc_config.profile_endpoint or "(not set)"),
                ("Scopes", kyc_config.scopes),
                ("Timeout", f"{kyc_config.timeout_ms}ms"),
                ("State TTL", f"{kyc_config.state_ttl_seconds}s"),
            ],
        ),
    ]

    storage_items: list[tuple[str, str]] = [
        ("Type", kyc_config.storage_type),
        ("Collection", kyc_config.storage_collection),
    ]
    if kyc_config.storage_type == "redis":
        storage_items.append(("Redis URL", kyc_config.redis_url))
    storage_items.append(
        (
            "Encryption",
            "enabled" if kyc_config.storage_encryption_key else "disabled",
        )
    )
    sections.append(("Storage", storage_items))

    logger.info("")
    logger.info("=" * 55)
    logger.info("  KYC MCP Server Configuration")
    logger.info("=" * 55)

    for section_name, items in sections:
        logger.info("")
        logger.info("  [%s]", section_name)
        for key, value in items:
            logger.info("    %-20s %s", key, value)

    logger.info("")
    logger.info("=" * 55)

    warnings: list[str] = []

    if not kyc_config.test_mode:
        for name in missing_callback_settings(kyc_config):
            warnings.append(f"{name} is required outside test mode")
        if not kyc_config.authorization_endpoint:
            warnings.append("authorization_endpoint is required to initiate KYC")
    if kyc_config.storage_type not in STORAGE_TYPES:
        warnings.append(
            f"Unknown KYC_STORAGE_TYPE {kyc_config.storage_type!r}, "
            f"expected one of: {', '.join(STORAGE_TYPES)}"
        )

    for warning in warnings:
        logger.warning("  ! %s", warning)

    if warnings:
        logger.info("")


def create_server(
    transport: str = "stdio", kyc_config: KycConfig | None = None
) -> FastMCP:
    """Create and configure the FastMCP server.

    Args:
        transport: Transport mode ('stdio' or 'http')
        kyc_config: KYC configuration (resolved from the environment if None)

    Returns:
        Configured FastMCP server instance
    """
    logger.debug("Creating FastMCP server instance for transport: %s", transport)

    config = kyc_config or resolve_config()
    set_handlers(KycHandlers(config, store=create_storage(config)))

    mcp = FastMCP("KYC MCP Server", lifespan=app_lifespan)

    logger.debug("Registering KYC tools")
    register_kyc_tools(mcp)
    if transport == "http":
        logger.debug("Registering KYC HTTP routes")
        register_kyc_routes(mcp)

    logger.debug("Server creation complete")
    return mcp


async def run_server_async(transport: str, port: int) -> None:
    """Run the server with graceful shutdown support.

    Args:
        transport: Transport mode ('stdio' or 'http')
        port: Port number for HTTP transport
    """
    kyc_config = resolve_config()
    _print_config(transport, port, kyc_config)
    server = create_server(transport, kyc_config)

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating shutdown...", sig.name)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler for SIGTERM
            pass

    logger.info("Starting server with transport: %s", transport)

    try:
        if transport == "http":
            await server.run_async(transport="http", port=port)
        else:
            await server.run_async(transport="stdio")
    except asyncio.CancelledError:
        logger.info("Server task cancelled")


app = typer.Typer(
    name="kyc-mcp-server",
    help="KYC MCP Server - OAuth identity verification pipeline over MCP and HTTP.",
    add_completion=False,
)


@app.command()
def main(
    transport: Annotated[
        str,
        typer.Option(
            "--transport",
            "-t",
            help="Transport mode: stdio, http",
        ),
    ] = "stdio",
    port: Annotated[
        int | None,
        typer.Option(
            "--port",
            "-p",
            help="Port for HTTP transport (default: from PORT env or 8000)",
        ),
    ] = None,
) -> None:
    """Run the KYC MCP Server."""
    actual_port = port or get_config().port

    try:
        asyncio.run(run_server_async(transport, actual_port))
    except KeyboardInterrupt:
        # Fallback for platforms where signal handlers don't work
        logger.info("Server stopped by user")


if __name__ == "__main__":
    app()
