from __future__ import annotations

from typing import Any

from pydantic import Field

from app.core.models.base import AppBaseModel
from app.core.models.profile import Role  # noqa: TCH001


class VerifiedIdentity(AppBaseModel):
    """Identity resolved from a bearer token by the identity provider."""

    subject_id: str
    email: str = ""
    claims: dict[str, Any] = Field(default_factory=dict)

    def display_name(self) -> str | None:
        """Best-effort display name from provider metadata, falling back to the email local part."""
        for key in ("full_name", "name"):
            value = self.claims.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        if self.email:
            return self.email.split("@", 1)[0] or None
        return None


class AuthContext(AppBaseModel):
    """Authenticated caller for the lifetime of one request."""

    subject_id: str
    role: Role
    email: str = ""
    full_name: str | None = None
