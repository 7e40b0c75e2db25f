"""MCP tools for the KYC server."""

from .kyc import register_kyc_tools

__all__ = ["register_kyc_tools"]
