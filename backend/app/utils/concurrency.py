from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from app.core.errors import UpstreamTimeoutError
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)


async def run_blocking(func: Callable[[], Any], *, timeout: float, operation: str) -> Any:
    """Run a blocking SDK call in a worker thread, bounded by ``timeout`` seconds.

    The thread itself cannot be interrupted; on timeout the caller stops waiting
    and gets a retryable ``UpstreamTimeoutError``.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func), timeout=timeout)
    except TimeoutError as err:
        logger.warning("Upstream call timed out", extra={"operation": operation, "timeout": timeout})
        raise UpstreamTimeoutError(f"Timed out while waiting for {operation}") from err
