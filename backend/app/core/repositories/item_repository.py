from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from app.core.models.item import Item, ItemStatus


class ItemRepository(ABC):
    """Abstract repository interface for items and their image rows.

    Implementations perform network I/O and raise ``StorageFailureError`` (or
    ``UpstreamTimeoutError``) on failure.
    """

    @abstractmethod
    async def create(self, item: Item) -> Item:  # pragma: no cover - interface only
        """Persist an item together with its image rows.

        Either both the item row and all image rows are stored, or the item row
        is removed again before the error is raised.
        """

    @abstractmethod
    async def get(self, item_id: UUID) -> Item | None:  # pragma: no cover
        """Fetch an item with its images ordered by position, or None."""

    @abstractmethod
    async def list(
        self,
        *,
        statuses: Sequence[ItemStatus],
        category: str | None = None,
        owner_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Item]:  # pragma: no cover
        """Return items newest first, filtered by status, category and owner."""

    @abstractmethod
    async def update(self, item_id: UUID, changes: dict[str, Any]) -> Item | None:  # pragma: no cover
        """Apply column changes to an item and return it, or None if missing."""

    @abstractmethod
    async def update_status(self, item_id: UUID, status: ItemStatus) -> Item | None:  # pragma: no cover
        """Change an item's status and return the updated item, or None if missing."""

    @abstractmethod
    async def delete(self, item_id: UUID) -> bool:  # pragma: no cover
        """Delete an item and its image rows. Return True if a row was removed."""
