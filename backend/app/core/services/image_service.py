from __future__ import annotations

import base64
import binascii
import io
import struct
from typing import TYPE_CHECKING
from uuid import uuid4

from PIL import Image, UnidentifiedImageError

from app.core.errors import InvalidImageError, StorageFailureError
from app.core.schemas.image import IngestedImage, PreparedImage
from app.utils.logging import get_logger
from app.utils.validation import normalize_mime_type, sanitize_filename, split_data_url

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from app.core.repositories.image_storage import ImageStorage
    from app.core.schemas.image import ImageUpload

logger = get_logger(__name__)

# Pillow format name -> (mime type, file extension)
SUPPORTED_FORMATS: dict[str, tuple[str, str]] = {
    "JPEG": ("image/jpeg", "jpg"),
    "PNG": ("image/png", "png"),
    "WEBP": ("image/webp", "webp"),
    "GIF": ("image/gif", "gif"),
    # Multi-picture JPEG as written by many phone cameras
    "MPO": ("image/jpeg", "jpg"),
}

# Formats re-encoded under a different Pillow writer
SAVE_FORMATS: dict[str, str] = {"MPO": "JPEG"}

_DECODE_ERRORS = (
    UnidentifiedImageError,
    OSError,
    SyntaxError,
    ValueError,
    struct.error,
    Image.DecompressionBombError,
)


class ImageService:
    """Decode, validate and store inline images.

    ``prepare`` is pure CPU work and raises ``InvalidImageError``; ``store``
    performs the upload and raises ``StorageFailureError``. Nothing half-written
    stays behind a failed ``store``.
    """

    def __init__(
        self,
        storage: ImageStorage,
        *,
        max_bytes: int = 5 * 1024 * 1024,
        max_dimension: int = 1920,
        allowed_mime_types: Iterable[str] = ("image/jpeg", "image/png", "image/webp", "image/gif"),
    ) -> None:
        self._storage = storage
        self._max_bytes = max_bytes
        self._max_dimension = max_dimension
        self._allowed = {normalize_mime_type(m) for m in allowed_mime_types}

    async def ingest(self, upload: ImageUpload, *, item_id: UUID) -> IngestedImage:
        """Validate and store a single image."""
        return await self.store(self.prepare(upload), item_id=item_id)

    def prepare(self, upload: ImageUpload) -> PreparedImage:
        data_url_mime, payload = split_data_url(upload.data or "")
        declared_mime = normalize_mime_type(upload.mime_type)
        for mime in (data_url_mime, declared_mime):
            if mime is not None and mime not in self._allowed:
                raise InvalidImageError(f"Unsupported image type: {mime}")

        payload = "".join(payload.split())
        if not payload:
            raise InvalidImageError("Image data is empty")
        # Reject before decoding when the encoded length already implies an oversized image
        if len(payload) > (self._max_bytes * 4) // 3 + 4:
            raise InvalidImageError(f"Image exceeds maximum size of {self._max_bytes} bytes")
        try:
            content = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as err:
            raise InvalidImageError("Image data is not valid base64") from err
        if not content:
            raise InvalidImageError("Image data is empty")
        if len(content) > self._max_bytes:
            raise InvalidImageError(f"Image exceeds maximum size of {self._max_bytes} bytes")

        image_format = self._detect_format(content)
        mime_type, extension = SUPPORTED_FORMATS[image_format]
        if mime_type not in self._allowed:
            raise InvalidImageError(f"Unsupported image type: {mime_type}")
        if declared_mime and declared_mime != mime_type:
            logger.info(
                "Declared image type differs from content",
                extra={"declared": declared_mime, "detected": mime_type},
            )

        content = self._downscale(content, image_format)

        original_filename = sanitize_filename(upload.original_filename)
        if original_filename is None:
            original_filename = f"image-{uuid4().hex[:12]}.{extension}"

        return PreparedImage(
            content=content,
            original_filename=original_filename,
            mime_type=mime_type,
            extension=extension,
        )

    async def store(self, prepared: PreparedImage, *, item_id: UUID) -> IngestedImage:
        key = self.build_key(item_id, prepared.extension)
        try:
            url = await self._storage.put(key, prepared.content, prepared.mime_type)
        except StorageFailureError:
            # A timed-out upload may still land after we stop waiting
            await self._delete_quietly(key)
            raise
        return IngestedImage(
            storage_path=key,
            url=url,
            original_filename=prepared.original_filename,
            mime_type=prepared.mime_type,
            size_bytes=prepared.size_bytes,
        )

    async def discard(self, storage_paths: Iterable[str]) -> None:
        """Best-effort removal of stored images; failures are only logged."""
        for key in storage_paths:
            await self._delete_quietly(key)

    def resolve_url(self, storage_path: str) -> str:
        return self._storage.public_url(storage_path)

    @staticmethod
    def build_key(item_id: UUID, extension: str) -> str:
        return f"{item_id}/item-{item_id}-{uuid4().hex}.{extension}"

    async def _delete_quietly(self, key: str) -> None:
        try:
            await self._storage.delete(key)
        except StorageFailureError as err:
            logger.warning(
                "Failed to remove stored image",
                extra={"key": key, "error_type": type(err).__name__},
            )

    @staticmethod
    def _detect_format(content: bytes) -> str:
        try:
            with Image.open(io.BytesIO(content)) as probe:
                image_format = probe.format
                probe.verify()
        except _DECODE_ERRORS as err:
            raise InvalidImageError("Image data could not be decoded") from err
        if image_format not in SUPPORTED_FORMATS:
            raise InvalidImageError(f"Unsupported image format: {image_format}")
        return image_format

    def _downscale(self, content: bytes, image_format: str) -> bytes:
        if self._max_dimension <= 0:
            return content
        try:
            with Image.open(io.BytesIO(content)) as img:
                # MPO frames are alternate views, not an animation; only the first is kept
                animated = getattr(img, "is_animated", False) and image_format != "MPO"
                if max(img.size) <= self._max_dimension or animated:
                    return content
                img.thumbnail((self._max_dimension, self._max_dimension))
                save_format = SAVE_FORMATS.get(image_format, image_format)
                if save_format == "JPEG" and img.mode not in ("RGB", "L", "CMYK"):
                    img = img.convert("RGB")
                out = io.BytesIO()
                options = {"quality": 85} if save_format in ("JPEG", "WEBP") else {}
                img.save(out, format=save_format, **options)
        except _DECODE_ERRORS as err:
            raise InvalidImageError("Image data could not be processed") from err
        return out.getvalue()
