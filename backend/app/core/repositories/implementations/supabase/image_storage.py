from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.errors import StorageFailureError, UpstreamTimeoutError
from app.core.repositories.image_storage import ImageStorage
from app.utils.concurrency import run_blocking
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from supabase import Client

logger = get_logger(__name__)


class SupabaseImageStorage(ImageStorage):
    """Image storage backed by a public Supabase Storage bucket.

    Uploads use ``upsert=false`` so an existing key is never overwritten;
    Supabase Storage commits an object only once the upload completes.
    """

    def __init__(self, client: Client, *, bucket: str = "item-images", timeout: float = 30.0) -> None:
        self._client: Client = client
        self._bucket = bucket
        self._timeout = timeout

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        try:
            await run_blocking(
                lambda: self._client.storage.from_(self._bucket).upload(
                    key,
                    content,
                    file_options={"content-type": content_type, "upsert": "false"},
                ),
                timeout=self._timeout,
                operation="image upload",
            )
        except UpstreamTimeoutError:
            raise
        except Exception as err:
            logger.error(
                "Image upload failed",
                extra={
                    "bucket": self._bucket,
                    "key": key,
                    "error_type": type(err).__name__,
                    "error_summary": str(err)[:100],
                },
            )
            raise StorageFailureError("Failed to store image") from err
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        try:
            await run_blocking(
                lambda: self._client.storage.from_(self._bucket).remove([key]),
                timeout=self._timeout,
                operation="image delete",
            )
        except UpstreamTimeoutError:
            raise
        except Exception as err:
            raise StorageFailureError("Failed to delete image") from err

    def public_url(self, key: str) -> str:
        return self._client.storage.from_(self._bucket).get_public_url(key)
