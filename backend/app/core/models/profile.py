from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from .base import AppBaseModel, TimestampedModel


class Role(str, Enum):
    """Roles a profile can hold."""

    USER = "user"
    ADMIN = "admin"


class Profile(TimestampedModel):
    """Server-side record extending an identity with role and display data.

    ``id`` is the identity provider's subject id, never generated locally.
    """

    id: str = Field(..., min_length=1, description="Subject id of the identity")
    full_name: str | None = Field(default=None, max_length=255)
    role: Role = Field(default=Role.USER)

    @field_validator("full_name", mode="before")
    @classmethod
    def normalize_full_name(cls, v: object) -> str | None:
        if not isinstance(v, str):
            return None
        stripped = v.strip()
        return stripped[:255] if stripped else None


class ProfileDefaults(AppBaseModel):
    """Values used only when a profile has to be created."""

    full_name: str | None = None
    role: Role | None = None
