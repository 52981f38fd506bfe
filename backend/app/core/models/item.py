from __future__ import annotations

import math
from enum import Enum
from uuid import UUID, uuid4

from pydantic import Field, field_validator, model_validator

from .base import TimestampedModel


class ItemStatus(str, Enum):
    """Lifecycle state of a marketplace listing."""

    ACTIVE = "active"
    PENDING = "pending"
    SOLD = "sold"
    ARCHIVED = "archived"


class ItemImage(TimestampedModel):
    """Image attached to exactly one item."""

    id: UUID = Field(default_factory=uuid4)
    item_id: UUID
    position: int = Field(..., ge=0, description="Submission order within the item")
    storage_path: str = Field(..., min_length=1, description="Object key inside the image bucket")
    url: str = Field(..., description="Public URL resolved from the storage path")
    original_filename: str
    mime_type: str
    size_bytes: int = Field(..., gt=0)


class Item(TimestampedModel):
    """Marketplace listing domain model."""

    id: UUID = Field(default_factory=uuid4, description="Unique item identifier")

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    status: ItemStatus = Field(default=ItemStatus.ACTIVE)

    owner_id: str = Field(..., min_length=1, description="Subject id of the creator")

    images: list[ItemImage] = Field(default_factory=list)
    image_url: str | None = Field(default=None, description="URL of the first image")

    battery_health: int | None = Field(default=None, ge=0, le=100)
    market_value: float | None = Field(default=None, ge=0)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("Price must be a finite number")
        return v

    @model_validator(mode="after")
    def order_images(self) -> Item:
        """Keep images in submission order and ``image_url`` pointing at the first one."""
        self.images = sorted(self.images, key=lambda image: image.position)
        self.image_url = self.images[0].url if self.images else None
        return self
