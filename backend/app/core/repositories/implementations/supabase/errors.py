from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from postgrest.exceptions import APIError

from app.core.errors import ConflictError, StorageFailureError
from app.utils.concurrency import run_blocking
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"


async def run_query(func: Callable[[], Any], *, timeout: float, operation: str) -> Any:
    """Execute a PostgREST call off the event loop and translate its failures.

    Unique violations become ``ConflictError``; any other PostgREST or
    transport error becomes ``StorageFailureError``. Timeouts propagate as
    ``UpstreamTimeoutError`` from ``run_blocking``.
    """
    try:
        return await run_blocking(func, timeout=timeout, operation=operation)
    except APIError as err:
        if str(err.code) == UNIQUE_VIOLATION:
            raise ConflictError(f"{operation}: row already exists") from err
        logger.error(
            "Database call failed",
            extra={"operation": operation, "code": err.code, "error_summary": (err.message or "")[:100]},
        )
        raise StorageFailureError(f"Database error during {operation}") from err
    except httpx.HTTPError as err:
        logger.error(
            "Database transport failed",
            extra={"operation": operation, "error_type": type(err).__name__},
        )
        raise StorageFailureError(f"Database unavailable during {operation}") from err


def first_row(data: Any) -> dict[str, Any]:
    if isinstance(data, list) and data:
        return data[0]
    if isinstance(data, dict):
        return data
    return {}
