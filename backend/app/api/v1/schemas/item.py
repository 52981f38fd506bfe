from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from uuid import UUID  # noqa: TCH003

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.models.base import AppBaseModel
from app.core.models.item import ItemStatus  # noqa: TCH001


class ImagePayload(BaseModel):
    """Inline image attached to an item creation request."""

    # Clients send extra upload metadata (size, lastModified); ignore it
    model_config = ConfigDict(extra="ignore")

    base64: str = Field(..., min_length=1, description="data:<mime>;base64,<payload> or raw base64")
    originalname: str | None = Field(default=None, description="Client-side filename")
    mimetype: str | None = Field(default=None, description="Declared MIME type")


class ItemCreate(AppBaseModel):
    title: str = Field(..., max_length=255, description="Listing title")
    description: str | None = Field(default=None, max_length=5000)
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Asking price")
    category: str = Field(..., max_length=100)
    images: list[ImagePayload] = Field(default_factory=list)
    battery_health: int | None = Field(default=None, ge=0, le=100)
    market_value: float | None = Field(default=None, ge=0, allow_inf_nan=False)

    @field_validator("title", "category")
    @classmethod
    def require_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be empty")
        return stripped


class ItemUpdate(AppBaseModel):
    """Partial edit of a listing; only the fields sent are changed."""

    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    category: str | None = Field(default=None, max_length=100)
    battery_health: int | None = Field(default=None, ge=0, le=100)
    market_value: float | None = Field(default=None, ge=0, allow_inf_nan=False)

    @field_validator("title", "category")
    @classmethod
    def require_text(cls, v: str | None) -> str | None:
        if v is None:
            return v
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be empty")
        return stripped


class ItemStatusUpdate(AppBaseModel):
    status: ItemStatus


class ImageRead(AppBaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    url: str
    original_filename: str
    mime_type: str
    size_bytes: int


class ItemRead(AppBaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID
    title: str
    description: str | None
    price: float
    category: str
    status: ItemStatus
    owner_id: str
    image_url: str | None
    images: list[ImageRead]
    battery_health: int | None
    market_value: float | None
    created_at: datetime
    updated_at: datetime | None
