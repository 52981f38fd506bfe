from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Any

from app.core.errors import StorageFailureError, UpstreamTimeoutError
from app.core.models.base import utc_now
from app.core.models.item import Item, ItemImage
from app.core.repositories.implementations.supabase.errors import first_row, run_query
from app.core.repositories.item_repository import ItemRepository
from app.utils.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from supabase import Client

    from app.core.models.item import ItemStatus


class SupabaseItemRepository(ItemRepository):
    """Supabase implementation of the ItemRepository.

    Items live in ``items``; their images in ``item_images`` referencing
    ``items.id``. Reads embed the image rows through PostgREST's resource
    embedding.
    """

    def __init__(
        self,
        client: Client,
        *,
        items_table: str = "items",
        images_table: str = "item_images",
        timeout: float = 10.0,
        settle_timeout: float | None = None,
    ) -> None:
        self._client: Client = client
        self._items = items_table
        self._images = images_table
        self._timeout = timeout
        # How long to wait for an abandoned insert before removing its row
        self._settle_timeout = timeout if settle_timeout is None else settle_timeout

    @property
    def _select(self) -> str:
        return f"*, images:{self._images}(*)"

    async def create(self, item: Item) -> Item:
        try:
            resp = await self._insert_rows(self._items, self._item_to_row(item), "item insert")
        except UpstreamTimeoutError:
            await self._remove_item_rows(item.id)
            raise
        stored = first_row(resp.data)
        if not stored:
            raise StorageFailureError("Item insert returned no row")

        if item.images:
            image_rows = [self._image_to_row(image) for image in item.images]
            try:
                await self._insert_rows(self._images, image_rows, "item image insert")
            except StorageFailureError:
                await self._remove_item_rows(item.id)
                raise

        return self._row_to_item({**stored, "images": [self._image_to_row(i) for i in item.images]})

    async def get(self, item_id: UUID) -> Item | None:
        resp = await self._run(
            lambda: self._client.table(self._items)
            .select(self._select)
            .eq("id", str(item_id))
            .limit(1)
            .execute(),
            "item lookup",
        )
        rows = resp.data or []
        if not rows:
            return None
        return self._row_to_item(rows[0])

    async def list(
        self,
        *,
        statuses: Sequence[ItemStatus],
        category: str | None = None,
        owner_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Item]:
        def _query():
            q = self._client.table(self._items).select(self._select)
            if statuses:
                q = q.in_("status", [s.value for s in statuses])
            if category:
                q = q.eq("category", category)
            if owner_id:
                q = q.eq("owner_id", owner_id)
            return (
                q
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )

        resp = await self._run(_query, "item listing")
        return [self._row_to_item(row) for row in resp.data or []]

    async def update(self, item_id: UUID, changes: dict[str, Any]) -> Item | None:
        row = {**changes, "updated_at": utc_now().isoformat()}
        resp = await self._run(
            lambda: self._client.table(self._items)
            .update(row)
            .eq("id", str(item_id))
            .execute(),
            "item update",
        )
        if not resp.data:
            return None
        return await self.get(item_id)

    async def update_status(self, item_id: UUID, status: ItemStatus) -> Item | None:
        return await self.update(item_id, {"status": status.value})

    async def delete(self, item_id: UUID) -> bool:
        await self._run(
            lambda: self._client.table(self._images).delete().eq("item_id", str(item_id)).execute(),
            "item image delete",
        )
        resp = await self._run(
            lambda: self._client.table(self._items).delete().eq("id", str(item_id)).execute(),
            "item delete",
        )
        return len(resp.data or []) > 0

    async def _insert_rows(self, table: str, rows: Any, operation: str) -> Any:
        """Insert rows; on timeout, wait for the abandoned call to finish before raising.

        The worker thread keeps running after a timeout and may still commit,
        so callers can only clean up once it has settled.
        """
        settled = threading.Event()

        def _insert():
            try:
                return self._client.table(table).insert(rows).execute()
            finally:
                settled.set()

        try:
            return await self._run(_insert, operation)
        except UpstreamTimeoutError:
            if not await asyncio.to_thread(settled.wait, self._settle_timeout):
                logger.error(
                    "Timed-out insert is still running, rows may persist",
                    extra={"operation": operation, "settle_timeout": self._settle_timeout},
                )
            raise

    async def _remove_item_rows(self, item_id: UUID) -> None:
        # Image rows first, a timed-out image insert may have landed
        for table, column in ((self._images, "item_id"), (self._items, "id")):
            try:
                await self._run(
                    lambda: self._client.table(table).delete().eq(column, str(item_id)).execute(),
                    "item rollback",
                )
            except StorageFailureError:
                logger.error(
                    "Failed to roll back item rows after insert failure",
                    extra={"item_id": str(item_id), "table": table},
                )

    async def _run(self, func: Callable[[], Any], operation: str) -> Any:
        return await run_query(func, timeout=self._timeout, operation=operation)

    @staticmethod
    def _row_to_item(row: dict[str, Any]) -> Item:
        normalized = {k: v for k, v in row.items() if k in Item.model_fields}
        images = row.get("images") or []
        normalized["images"] = [
            ItemImage.model_validate({k: v for k, v in image.items() if k in ItemImage.model_fields})
            for image in images
        ]
        # image_url is derived from the ordered images
        normalized.pop("image_url", None)
        return Item.model_validate(normalized)

    @staticmethod
    def _item_to_row(item: Item) -> dict[str, Any]:
        data = item.model_dump(mode="json", exclude={"images"})
        if data.get("updated_at") is None:
            data.pop("updated_at", None)
        return data

    @staticmethod
    def _image_to_row(image: ItemImage) -> dict[str, Any]:
        return image.model_dump(mode="json")
