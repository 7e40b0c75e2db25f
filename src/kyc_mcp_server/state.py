"""Anti-CSRF state tokens for the KYC OAuth flow.

The server keeps no state between the initiate and callback calls: the
caller stores the token and its creation time and presents both back on
callback. Validation is a pure function over those inputs and the clock.
"""

from __future__ import annotations

import math
import secrets
import string
import time
from typing import Any

import msgspec

REASON_MISSING = "Missing OAuth state or expectedState"
REASON_MISMATCH = "State mismatch"
REASON_INVALID_CREATED_AT = "Invalid stateCreatedAt"
REASON_EXPIRED = "State expired"

_BASE36 = string.digits + string.ascii_lowercase


class StateToken(msgspec.Struct, frozen=True):
    """Opaque state value plus its creation time in epoch milliseconds."""

    value: str
    created_at: int


class StateCheck(msgspec.Struct, frozen=True):
    """Outcome of a state validation; ``reason`` is empty when ``ok``."""

    ok: bool
    reason: str = ""


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_state() -> StateToken:
    """Generate a new state token.

    The value joins a millisecond clock component with a random component,
    so two tokens differ even when the clock does not advance between them.

    Returns:
        StateToken: Fresh token and its creation timestamp
    """
    created_at = _now_ms()
    value = f"{_to_base36(created_at)}-{secrets.token_urlsafe(12)}"
    return StateToken(value=value, created_at=created_at)


def _omitted(value: Any) -> bool:
    # Falsy timestamps (0, False) count as not supplied
    if value is None or value == "":
        return True
    return isinstance(value, (int, float)) and value == 0


def _parse_timestamp(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def validate_state(
    presented: str | None,
    expected: str | None,
    created_at: Any = None,
    *,
    ttl_seconds: int = 600,
    now_ms: int | None = None,
) -> StateCheck:
    """Validate a presented state against the expected one.

    Args:
        presented: State returned by the identity provider
        expected: State the caller stored at initiate time
        created_at: Creation time in epoch ms. ``None``, ``""`` or ``0``
            skips the TTL check, so callers that omit it accept states of
            any age.
        ttl_seconds: Maximum age in whole seconds (exactly TTL is valid)
        now_ms: Current time in epoch ms (defaults to the wall clock)

    Returns:
        StateCheck: ``ok`` plus the failure reason, if any
    """
    if not presented or not expected:
        return StateCheck(ok=False, reason=REASON_MISSING)

    if presented != expected:
        return StateCheck(ok=False, reason=REASON_MISMATCH)

    if _omitted(created_at):
        return StateCheck(ok=True)

    timestamp = _parse_timestamp(created_at)
    if timestamp is None:
        return StateCheck(ok=False, reason=REASON_INVALID_CREATED_AT)

    current = _now_ms() if now_ms is None else now_ms
    age_seconds = math.floor((current - timestamp) / 1000)
    if age_seconds > ttl_seconds:
        return StateCheck(ok=False, reason=REASON_EXPIRED)

    return StateCheck(ok=True)
