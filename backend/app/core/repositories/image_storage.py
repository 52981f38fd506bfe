from __future__ import annotations

from abc import ABC, abstractmethod


class ImageStorage(ABC):
    """Object storage for image bytes.

    ``put`` must be atomic from a reader's point of view: an object is either
    fully visible under its key or absent.
    """

    @abstractmethod
    async def put(self, key: str, content: bytes, content_type: str) -> str:  # pragma: no cover - interface only
        """Store bytes under a new key and return the public URL.

        Raises:
            StorageFailureError: upload failed or the key already exists.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:  # pragma: no cover
        """Remove an object. Removing a missing key is not an error."""

    @abstractmethod
    def public_url(self, key: str) -> str:  # pragma: no cover
        """Resolve the public URL for a stored key without network I/O."""
