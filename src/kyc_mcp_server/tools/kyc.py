"""KYC verification tools for the MCP server."""

from typing import Any

from fastmcp import FastMCP

from ..context import get_handlers
from ..handlers import HandlerRequest, HandlerResponse
from ..logging_config import get_logger

logger = get_logger("tools.kyc")


def _tool_result(response: HandlerResponse) -> dict[str, Any]:
    return {**(response.payload or {}), "statusCode": response.status_code}


def register_kyc_tools(mcp: FastMCP) -> None:
    """Register KYC tools with the MCP server."""

    @mcp.tool()
    async def kyc_initiate() -> dict[str, Any]:
        """Start a KYC verification flow.

        Returns:
            Result including:
            - data.state: State value to store and send back on callback
            - data.authorizationUrl: URL to send the user to
            - data.stateCreatedAt: State creation time (epoch ms)
        """
        response = await get_handlers().initiate(HandlerRequest(method="GET"))
        return _tool_result(response)

    @mcp.tool()
    async def kyc_verify_callback(
        tenant_id: str,
        code: str,
        state: str,
        expected_state: str,
        state_created_at: int | None = None,
        simulate_failure: str | None = None,
    ) -> dict[str, Any]:
        """Complete a KYC verification after the provider redirect.

        Args:
            tenant_id: Tenant being verified
            code: Authorization code from the redirect
            state: State returned by the provider
            expected_state: State stored at initiate time
            state_created_at: State creation time (epoch ms) for the TTL check
            simulate_failure: Test hook: 'token', 'profile' or 'write'

        Returns:
            Staged result (success, stage, message, data, statusCode)
        """
        body: dict[str, Any] = {
            "tenantId": tenant_id,
            "code": code,
            "state": state,
            "expectedState": expected_state,
            "stateCreatedAt": state_created_at,
            "simulateFailure": simulate_failure,
        }
        response = await get_handlers().callback(HandlerRequest(method="POST", body=body))
        return _tool_result(response)

    @mcp.tool()
    async def kyc_test_flow(
        tenant_id: str,
        simulate_failure: str | None = None,
    ) -> dict[str, Any]:
        """Dry-run the verification pipeline for a tenant.

        Uses default state and code values; in test mode no provider is
        contacted.

        Args:
            tenant_id: Tenant being verified
            simulate_failure: Test hook: 'token', 'profile' or 'write'

        Returns:
            Staged result (success, stage, message, data, statusCode)
        """
        body = {"tenantId": tenant_id, "simulateFailure": simulate_failure}
        response = await get_handlers().test_flow(HandlerRequest(method="POST", body=body))
        return _tool_result(response)
