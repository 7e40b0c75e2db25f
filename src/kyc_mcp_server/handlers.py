"""Request handlers for the KYC endpoints.

Handlers are framework-neutral: they take a :class:`HandlerRequest` (method,
decoded JSON body, origin) and return a :class:`HandlerResponse` whose
payload is always ``{success, stage, message, data}``. ``routes.py`` adapts
them to Starlette and ``tools/kyc.py`` to MCP tools.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx
import msgspec

from .config import KycConfig, missing_initiate_settings
from .errors import STAGE_PROFILE, STAGE_TOKEN, STAGE_WRITE, KycError, Stage
from .logging_config import get_logger
from .oauth.authorization import (
    MOCK_AUTH_CODE,
    build_authorization_url,
    build_test_redirect_url,
)
from .oauth.profile import fetch_profile
from .oauth.token_exchange import INVALID_CODE_SENTINEL, exchange_code
from .pipeline import (
    SIMULATED_STAGES,
    KycPipeline,
    VerificationRequest,
    VerificationResult,
)
from .state import generate_state

if TYPE_CHECKING:
    from key_value.aio.protocols.key_value import AsyncKeyValue

logger = get_logger("handlers")

TEST_FLOW_STATE = "test_state"


class HandlerRequest(msgspec.Struct, kw_only=True):
    """Inbound request reduced to what the handlers need."""

    method: str
    body: dict[str, Any] = msgspec.field(default_factory=dict)
    origin: str | None = None


class HandlerResponse(msgspec.Struct, kw_only=True):
    """Outbound response; ``payload`` is None for CORS preflight."""

    status_code: int
    payload: dict[str, Any] | None
    headers: dict[str, str] = msgspec.field(default_factory=dict)


def parse_json_body(raw: bytes) -> dict[str, Any]:
    """Decode a JSON request body; anything other than an object becomes {}."""
    if not raw:
        return {}
    try:
        body = msgspec.json.decode(raw)
    except msgspec.DecodeError:
        return {}
    return body if isinstance(body, dict) else {}


def cors_headers(origin: str | None) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
        "Vary": "Origin",
    }


def _simulate_failure(body: dict[str, Any]) -> str | None:
    value = body.get("simulateFailure")
    return value if value in SIMULATED_STAGES else None


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class KycHandlers:
    """Endpoint logic bound to one configuration and store.

    Args:
        config: Resolved KYC configuration
        store: Key-value store receiving verified records
        client: Optional shared HTTP client for provider calls
    """

    def __init__(
        self,
        config: KycConfig,
        store: "AsyncKeyValue | None" = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.pipeline = KycPipeline(config, store=store, client=client)

    def _respond(
        self,
        request: HandlerRequest,
        status_code: int,
        success: bool,
        stage: Stage,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> HandlerResponse:
        return HandlerResponse(
            status_code=status_code,
            payload={
                "success": success,
                "stage": stage,
                "message": message,
                "data": data or {},
            },
            headers=cors_headers(request.origin),
        )

    def _from_result(
        self, request: HandlerRequest, result: VerificationResult
    ) -> HandlerResponse:
        return HandlerResponse(
            status_code=result.status_code,
            payload=result.to_dict(),
            headers=cors_headers(request.origin),
        )

    def _guard_method(
        self, request: HandlerRequest, allowed: str, stage: Stage
    ) -> HandlerResponse | None:
        if request.method.upper() == "OPTIONS":
            return HandlerResponse(
                status_code=204, payload=None, headers=cors_headers(request.origin)
            )
        if request.method.upper() != allowed:
            return self._respond(request, 405, False, stage, "Method not allowed")
        return None

    async def initiate(self, request: HandlerRequest) -> HandlerResponse:
        """Start a flow: fresh state plus the provider authorization URL."""
        rejected = self._guard_method(request, "GET", STAGE_TOKEN)
        if rejected:
            return rejected

        config = self.config
        state = generate_state()
        missing = missing_initiate_settings(config)

        if missing and not config.test_mode:
            logger.error("Cannot initiate KYC, settings missing: %s", ", ".join(missing))
            return self._respond(request, 500, False, STAGE_TOKEN, "OAuth config missing")

        if missing:
            return self._respond(
                request,
                200,
                True,
                STAGE_TOKEN,
                "KYC initiated (test mode)",
                {
                    "state": state.value,
                    "authorizationUrl": build_test_redirect_url(config, state.value),
                    "stateCreatedAt": state.created_at,
                },
            )

        logger.info("KYC initiated: test_mode=%s", config.test_mode)
        return self._respond(
            request,
            200,
            True,
            STAGE_TOKEN,
            "KYC initiated",
            {
                "state": state.value,
                "authorizationUrl": build_authorization_url(config, state.value),
                "stateCreatedAt": state.created_at,
            },
        )

    async def exchange(self, request: HandlerRequest) -> HandlerResponse:
        """Exchange a code for a token and return its metadata only."""
        rejected = self._guard_method(request, "POST", STAGE_TOKEN)
        if rejected:
            return rejected

        config = self.config
        if not config.test_mode and not (
            config.client_id
            and config.client_secret
            and config.redirect_uri
            and config.token_endpoint
        ):
            return self._respond(
                request, 500, False, STAGE_TOKEN, "OAuth token config missing"
            )

        code = request.body.get("code")
        if not code:
            return self._respond(
                request, 400, False, STAGE_TOKEN, "Authorization code is required"
            )

        try:
            token = await exchange_code(
                str(code),
                config,
                simulate_failure=_simulate_failure(request.body),
                client=self.client,
            )
        except KycError as e:
            logger.error("Token exchange failed: %s", e.message)
            return self._respond(
                request,
                500,
                False,
                STAGE_TOKEN,
                "Token exchange failed",
                {"reason": e.message},
            )

        return self._respond(
            request, 200, True, STAGE_TOKEN, "Token exchange successful", token.metadata()
        )

    async def profile(self, request: HandlerRequest) -> HandlerResponse:
        """Fetch the profile for a caller-supplied access token."""
        rejected = self._guard_method(request, "POST", STAGE_PROFILE)
        if rejected:
            return rejected

        config = self.config
        if not config.test_mode and not config.profile_endpoint:
            return self._respond(
                request, 500, False, STAGE_PROFILE, "OAuth profile config missing"
            )

        access_token = request.body.get("accessToken")
        if not access_token:
            return self._respond(
                request, 400, False, STAGE_PROFILE, "accessToken is required"
            )

        tenant_id = request.body.get("tenantId")
        try:
            profile = await fetch_profile(
                str(access_token),
                config,
                simulate_failure=_simulate_failure(request.body),
                tenant_id=str(tenant_id) if tenant_id else None,
                client=self.client,
            )
        except KycError as e:
            logger.error("Profile fetch failed: %s", e.message)
            return self._respond(
                request,
                500,
                False,
                STAGE_PROFILE,
                "Profile fetch failed",
                {"reason": e.message},
            )

        return self._respond(
            request, 200, True, STAGE_PROFILE, "Profile fetch successful", {"profile": profile}
        )

    async def callback(self, request: HandlerRequest) -> HandlerResponse:
        """Run the full pipeline for a provider redirect."""
        rejected = self._guard_method(request, "POST", STAGE_TOKEN)
        if rejected:
            return rejected

        body = request.body
        tenant_id = str(body.get("tenantId") or "").strip()
        if not tenant_id:
            return self._respond(request, 400, False, STAGE_WRITE, "tenantId is required")

        code = body.get("code")
        state = body.get("state")
        expected_state = body.get("expectedState")
        if not code or not state or not expected_state:
            return self._respond(
                request,
                400,
                False,
                STAGE_TOKEN,
                "code, state and expectedState are required",
                {"tenantId": tenant_id},
            )

        result = await self.pipeline.verify(
            VerificationRequest(
                tenant_id=tenant_id,
                code=str(code),
                state=str(state),
                expected_state=str(expected_state),
                state_created_at=body.get("stateCreatedAt"),
                simulate_failure=_simulate_failure(body),
            )
        )
        return self._from_result(request, result)

    async def test_flow(self, request: HandlerRequest) -> HandlerResponse:
        """Dry-run the pipeline with defaults for everything but the tenant."""
        rejected = self._guard_method(request, "POST", STAGE_TOKEN)
        if rejected:
            return rejected

        body = request.body
        tenant_id = str(body.get("tenantId") or "").strip()
        if not tenant_id:
            return self._respond(request, 400, False, STAGE_TOKEN, "tenantId is required")

        default_code = MOCK_AUTH_CODE if self.config.test_mode else INVALID_CODE_SENTINEL
        result = await self.pipeline.verify(
            VerificationRequest(
                tenant_id=tenant_id,
                code=str(body.get("code") or default_code),
                state=str(body.get("state") or TEST_FLOW_STATE),
                expected_state=str(body.get("expectedState") or TEST_FLOW_STATE),
                state_created_at=body.get("stateCreatedAt") or _now_ms(),
                simulate_failure=_simulate_failure(body),
            )
        )
        return self._from_result(request, result)
