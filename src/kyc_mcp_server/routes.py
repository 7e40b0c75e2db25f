"""HTTP routes for the KYC endpoints.

Each route accepts every method so the handlers can answer wrong verbs with
a stage-tagged 405 payload instead of Starlette's bare 405.
"""

from __future__ import annotations

from typing import Any

import msgspec
from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from .context import get_handlers
from .handlers import HandlerRequest, HandlerResponse, parse_json_body
from .logging_config import get_logger

logger = get_logger("routes")

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class MsgspecJSONResponse(Response):
    """JSON response rendered with msgspec."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return msgspec.json.encode(content)


def _to_response(response: HandlerResponse) -> Response:
    if response.payload is None:
        return Response(status_code=response.status_code, headers=response.headers)
    return MsgspecJSONResponse(
        response.payload,
        status_code=response.status_code,
        headers=response.headers,
    )


async def _dispatch(request: Request, operation: str) -> Response:
    body: dict[str, Any] = {}
    if request.method not in ("GET", "HEAD", "OPTIONS"):
        body = parse_json_body(await request.body())

    handler_request = HandlerRequest(
        method=request.method,
        body=body,
        origin=request.headers.get("origin"),
    )
    logger.debug("%s %s -> %s", request.method, request.url.path, operation)
    response = await getattr(get_handlers(), operation)(handler_request)
    return _to_response(response)


async def initiate_endpoint(request: Request) -> Response:
    return await _dispatch(request, "initiate")


async def exchange_endpoint(request: Request) -> Response:
    return await _dispatch(request, "exchange")


async def profile_endpoint(request: Request) -> Response:
    return await _dispatch(request, "profile")


async def callback_endpoint(request: Request) -> Response:
    return await _dispatch(request, "callback")


async def test_flow_endpoint(request: Request) -> Response:
    return await _dispatch(request, "test_flow")


async def health_endpoint(request: Request) -> Response:
    return MsgspecJSONResponse({"status": "ok"})


KYC_ROUTES = [
    ("/kyc/initiate", initiate_endpoint),
    ("/kyc/exchange", exchange_endpoint),
    ("/kyc/profile", profile_endpoint),
    ("/kyc/callback", callback_endpoint),
    ("/kyc/test-flow", test_flow_endpoint),
]


def build_routes() -> list[Route]:
    """Starlette routes for mounting outside FastMCP (and for tests)."""
    routes = [Route(path, endpoint, methods=ALL_METHODS) for path, endpoint in KYC_ROUTES]
    routes.append(Route("/health", health_endpoint, methods=["GET"]))
    return routes


def register_kyc_routes(mcp: FastMCP) -> None:
    """Register the KYC HTTP routes with the MCP server."""
    for path, endpoint in KYC_ROUTES:
        mcp.custom_route(path, methods=ALL_METHODS)(endpoint)
    mcp.custom_route("/health", methods=["GET"])(health_endpoint)
