"""Helpers for reading identity provider HTTP responses."""

from __future__ import annotations

from typing import Any

import httpx
import msgspec


def decode_body(response: httpx.Response) -> Any:
    """Best-effort JSON decode of a response body.

    Returns an empty dict when the body is empty or not valid JSON, so
    error messages can always embed something.
    """
    if not response.content:
        return {}
    try:
        return msgspec.json.decode(response.content)
    except msgspec.DecodeError:
        return {}


def describe_failure(prefix: str, response: httpx.Response, body: Any) -> str:
    """Format an upstream failure as ``"<prefix>: <status> <body-json>"``."""
    return f"{prefix}: {response.status_code} {msgspec.json.encode(body).decode()}"
