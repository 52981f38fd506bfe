from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from app.core.errors import (
    IdentityProviderUnavailableError,
    UnauthenticatedError,
    UpstreamTimeoutError,
)
from app.core.schemas.auth import VerifiedIdentity
from app.utils.concurrency import run_blocking
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from supabase import Client

logger = get_logger(__name__)


class TokenVerifier:
    """Resolve bearer tokens to identities through Supabase Auth.

    Every call goes to the provider; validity is never cached locally.
    """

    def __init__(self, client: Client, *, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    async def verify(self, token: str | None) -> VerifiedIdentity:
        if not token or not token.strip():
            raise UnauthenticatedError("Authentication required")
        token = token.strip()
        if len(token.split(".")) != 3:
            raise UnauthenticatedError("Invalid token format")

        try:
            resp = await run_blocking(
                lambda: self._client.auth.get_user(token),
                timeout=self._timeout,
                operation="token verification",
            )
        except UpstreamTimeoutError:
            raise
        except httpx.TimeoutException as err:
            raise UpstreamTimeoutError("Timed out while verifying token") from err
        except httpx.TransportError as err:
            logger.warning("Identity provider unreachable", extra={"error_type": type(err).__name__})
            raise IdentityProviderUnavailableError("Identity provider is unavailable") from err
        except Exception as err:
            status_code = getattr(err, "status", None)
            logger.warning(
                "JWT validation failed",
                extra={
                    "error_type": type(err).__name__,
                    "status": status_code,
                    "error_summary": str(err)[:100],
                },
            )
            if isinstance(status_code, int) and (status_code == 0 or status_code >= 500):
                raise IdentityProviderUnavailableError("Identity provider is unavailable") from err
            raise UnauthenticatedError("Token is invalid or expired") from err

        return self._to_identity(getattr(resp, "user", None))

    @staticmethod
    def _to_identity(user: Any) -> VerifiedIdentity:
        user_id = getattr(user, "id", None) if user else None
        if not user_id:
            raise UnauthenticatedError("Invalid user data")
        claims = getattr(user, "user_metadata", None) or {}
        return VerifiedIdentity(
            subject_id=str(user_id),
            email=getattr(user, "email", None) or "",
            claims=dict(claims),
        )
