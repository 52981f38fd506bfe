from __future__ import annotations

from pydantic import BaseModel, Field

from app.core.models.profile import Role  # noqa: TCH001


class CurrentUserResponse(BaseModel):
    """Authenticated caller as seen by this service."""

    subject_id: str = Field(..., description="Identity provider subject id (equals the profile id)")
    email: str = Field(default="", description="Email reported by the identity provider")
    full_name: str | None = Field(default=None, description="Display name from the profile")
    role: Role = Field(..., description="Role stored on the profile")
