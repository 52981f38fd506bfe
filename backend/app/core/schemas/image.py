from __future__ import annotations

from pydantic import Field

from app.core.models.base import AppBaseModel


class ImageUpload(AppBaseModel):
    """Inline image as submitted by a client."""

    data: str = Field(..., description="Base64 payload, optionally as a data URL")
    original_filename: str | None = None
    mime_type: str | None = None


class PreparedImage(AppBaseModel):
    """Decoded and validated image bytes ready to be stored."""

    content: bytes
    original_filename: str
    mime_type: str
    extension: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class IngestedImage(AppBaseModel):
    """Image persisted in object storage."""

    storage_path: str
    url: str
    original_filename: str
    mime_type: str
    size_bytes: int
