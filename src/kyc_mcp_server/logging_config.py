"""Logging configuration for the KYC MCP server.

All loggers live under the ``kyc_mcp_server`` namespace so a single call to
:func:`setup_logging` configures the whole package.

Usage:
    from .logging_config import get_logger

    logger = get_logger("pipeline")
    logger.info("Verification started: tenant_id=%s", tenant_id)
"""

from __future__ import annotations

import logging
import os
import sys

ROOT_LOGGER_NAME = "kyc_mcp_server"

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the package root logger.

    The level is taken from the ``level`` argument, then the ``LOG_LEVEL``
    environment variable, then defaults to INFO. Calling this more than once
    only updates the level.

    Args:
        level: Optional level name (e.g. "DEBUG", "info")
    """
    global _configured

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if _configured:
        return

    # stderr keeps stdout clean for the stdio MCP transport
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger in the package namespace.

    Args:
        name: Dotted area name, e.g. "oauth.token_exchange"

    Returns:
        logging.Logger named ``kyc_mcp_server.<name>``
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
