"""Deadline enforcement for outbound provider calls.

The operation runs inside an ``asyncio.timeout`` scope. When the deadline
passes, the running task is cancelled, which aborts the in-flight httpx
request and closes its connection before control returns here. The scope
releases its timer handle on every exit path.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from .errors import STAGE_WRITE, Stage, UpstreamTimeoutError
from .logging_config import get_logger

logger = get_logger("timeout")

T = TypeVar("T")


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: int,
    timeout_message: str,
    *,
    stage: Stage = STAGE_WRITE,
) -> T:
    """Run ``operation`` with a deadline.

    Args:
        operation: Zero-argument coroutine factory performing the call
        timeout_ms: Deadline in milliseconds
        timeout_message: Message of the error raised on timeout
        stage: Pipeline stage attached to the timeout error

    Returns:
        Whatever ``operation`` returns

    Raises:
        UpstreamTimeoutError: If the deadline passes or the HTTP client
            reports its own timeout. Other errors propagate unchanged.
    """
    try:
        async with asyncio.timeout(timeout_ms / 1000):
            return await operation()
    except (TimeoutError, httpx.TimeoutException) as e:
        logger.debug("Outbound call timed out after %dms: %s", timeout_ms, e)
        raise UpstreamTimeoutError(timeout_message, stage=stage) from e
