from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.errors import ForbiddenError
from app.core.models.profile import Role

if TYPE_CHECKING:
    from collections.abc import Iterable

    from app.core.schemas.auth import AuthContext


def authorize(ctx: AuthContext, required_roles: Iterable[Role | str]) -> AuthContext:
    """Check the caller's role against an operation's allowed roles. No I/O.

    An empty requirement admits any authenticated caller.
    """
    allowed = {Role(role) for role in required_roles}
    if allowed and ctx.role not in allowed:
        raise ForbiddenError("Insufficient role for this operation")
    return ctx


def can_manage_item(ctx: AuthContext, owner_id: str) -> bool:
    """Owners manage their own items; admins manage any item."""
    return ctx.role == Role.ADMIN or ctx.subject_id == owner_id
