from __future__ import annotations

import asyncio
import math
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from app.core.errors import (
    ForbiddenError,
    ImageFailureError,
    InvalidImageError,
    NotFoundError,
    StorageFailureError,
    ValidationFailedError,
)
from app.core.models.item import Item, ItemImage, ItemStatus
from app.core.schemas.image import ImageUpload
from app.core.services.access_control import can_manage_item
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from app.core.repositories.item_repository import ItemRepository
    from app.core.schemas.auth import AuthContext
    from app.core.schemas.image import IngestedImage, PreparedImage
    from app.core.services.image_service import ImageService

logger = get_logger(__name__)

DEFAULT_VISIBLE_STATUSES = (ItemStatus.ACTIVE, ItemStatus.PENDING)
# Listing columns the seller can set on create and edit
ITEM_FIELDS = ("title", "description", "price", "category", "battery_health", "market_value")


class ItemService:
    """Create and query marketplace items.

    Item creation is all-or-nothing across the database and object storage:
    every submitted image is stored before the item row is written, and any
    failure removes the images stored so far.
    """

    def __init__(
        self,
        repo: ItemRepository,
        images: ImageService,
        *,
        max_images: int = 5,
        default_limit: int = 50,
        max_limit: int = 100,
    ) -> None:
        self._repo = repo
        self._images = images
        self._max_images = max_images
        self._default_limit = default_limit
        self._max_limit = max_limit

    async def create_item(self, ctx: AuthContext, create_dto) -> Item:
        fields = self._validate_fields(create_dto)
        uploads = [self._to_upload(entry) for entry in (getattr(create_dto, "images", None) or [])]
        if len(uploads) > self._max_images:
            raise ValidationFailedError(
                f"At most {self._max_images} images can be attached to an item",
                field="images",
            )

        item_id = uuid4()
        prepared: list[PreparedImage] = []
        for index, upload in enumerate(uploads):
            try:
                prepared.append(await asyncio.to_thread(self._images.prepare, upload))
            except InvalidImageError as err:
                raise ImageFailureError(
                    f"Image {index + 1} was rejected: {err.message}", index=index, cause=err
                ) from err

        stored: list[IngestedImage] = []
        try:
            for index, image in enumerate(prepared):
                try:
                    stored.append(await self._images.store(image, item_id=item_id))
                except StorageFailureError as err:
                    raise ImageFailureError(
                        f"Image {index + 1} could not be stored", index=index, cause=err
                    ) from err

            item = Item(
                id=item_id,
                owner_id=ctx.subject_id,
                status=ItemStatus.ACTIVE,
                images=[
                    ItemImage(
                        item_id=item_id,
                        position=position,
                        storage_path=image.storage_path,
                        url=image.url,
                        original_filename=image.original_filename,
                        mime_type=image.mime_type,
                        size_bytes=image.size_bytes,
                    )
                    for position, image in enumerate(stored)
                ],
                **fields,
            )
            created = await self._repo.create(item)
        except (Exception, asyncio.CancelledError):
            if stored:
                logger.warning(
                    "Item creation failed, removing stored images",
                    extra={"item_id": str(item_id), "image_count": len(stored)},
                )
                await asyncio.shield(self._images.discard([image.storage_path for image in stored]))
            raise

        logger.info(
            "Item created",
            extra={"item_id": str(created.id), "user_id": ctx.subject_id, "image_count": len(created.images)},
        )
        return self._with_resolved_urls(created)

    async def get_item(self, item_id: str | UUID) -> Item | None:
        try:
            item_uuid = UUID(str(item_id))
        except ValueError:
            return None
        item = await self._repo.get(item_uuid)
        return self._with_resolved_urls(item) if item else None

    async def list_items(
        self,
        *,
        status: ItemStatus | None = None,
        category: str | None = None,
        owner_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> Sequence[Item]:
        """List items newest first; without a status filter active and pending items are shown."""
        limit = self._default_limit if limit is None else limit
        if limit < 1 or limit > self._max_limit:
            raise ValidationFailedError(f"limit must be between 1 and {self._max_limit}", field="limit")
        if offset < 0:
            raise ValidationFailedError("offset must not be negative", field="offset")
        items = await self._repo.list(
            statuses=[status] if status else list(DEFAULT_VISIBLE_STATUSES),
            category=(category or "").strip() or None,
            owner_id=owner_id or None,
            limit=limit,
            offset=offset,
        )
        return [self._with_resolved_urls(item) for item in items]

    async def update_item(self, ctx: AuthContext, item_id: str | UUID, update_dto) -> Item:
        """Apply a partial edit of the listing fields; images and status are left alone."""
        existing = await self.get_item(item_id)
        if existing is None:
            raise NotFoundError("Item not found")
        if not can_manage_item(ctx, existing.owner_id):
            raise ForbiddenError("Only the owner or an admin can edit this item")

        values = update_dto.model_dump(exclude_unset=True, include=set(ITEM_FIELDS))
        changes = self._clean_fields(values)
        if not changes:
            return existing

        updated = await self._repo.update(existing.id, changes)
        if updated is None:
            raise NotFoundError("Item not found")
        logger.info(
            "Item updated",
            extra={"item_id": str(existing.id), "user_id": ctx.subject_id, "fields": sorted(changes)},
        )
        return self._with_resolved_urls(updated)

    async def update_status(self, ctx: AuthContext, item_id: str | UUID, status: ItemStatus) -> Item:
        existing = await self.get_item(item_id)
        if existing is None:
            raise NotFoundError("Item not found")
        updated = await self._repo.update_status(existing.id, status)
        if updated is None:
            raise NotFoundError("Item not found")
        logger.info(
            "Item status updated",
            extra={"item_id": str(existing.id), "user_id": ctx.subject_id, "status": status.value},
        )
        return self._with_resolved_urls(updated)

    async def delete_item(self, ctx: AuthContext, item_id: str | UUID) -> None:
        existing = await self.get_item(item_id)
        if existing is None:
            raise NotFoundError("Item not found")
        if not can_manage_item(ctx, existing.owner_id):
            raise ForbiddenError("Only the owner or an admin can delete this item")
        if not await self._repo.delete(existing.id):
            raise NotFoundError("Item not found")
        await self._images.discard([image.storage_path for image in existing.images])
        logger.info("Item deleted", extra={"item_id": str(existing.id), "user_id": ctx.subject_id})

    def _validate_fields(self, create_dto) -> dict[str, Any]:
        return self._clean_fields({name: getattr(create_dto, name, None) for name in ITEM_FIELDS})

    @staticmethod
    def _clean_fields(values: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalize the editable columns present in ``values``."""
        cleaned: dict[str, Any] = {}

        if "title" in values:
            title = (values["title"] or "").strip()
            if not title:
                raise ValidationFailedError("Title is required", field="title")
            if len(title) > 255:
                raise ValidationFailedError("Title must be at most 255 characters", field="title")
            cleaned["title"] = title

        if "category" in values:
            category = (values["category"] or "").strip()
            if not category:
                raise ValidationFailedError("Category is required", field="category")
            if len(category) > 100:
                raise ValidationFailedError("Category must be at most 100 characters", field="category")
            cleaned["category"] = category

        if "price" in values:
            try:
                price = float(values["price"])
            except (TypeError, ValueError):
                raise ValidationFailedError("Price must be a number", field="price") from None
            if not math.isfinite(price) or price < 0:
                raise ValidationFailedError("Price must be a non-negative number", field="price")
            cleaned["price"] = price

        if "description" in values:
            description = (values["description"] or "").strip() or None
            if description and len(description) > 5000:
                raise ValidationFailedError("Description must be at most 5000 characters", field="description")
            cleaned["description"] = description

        if "battery_health" in values:
            battery_health = values["battery_health"]
            if battery_health is not None and not 0 <= battery_health <= 100:
                raise ValidationFailedError("battery_health must be between 0 and 100", field="battery_health")
            cleaned["battery_health"] = battery_health

        if "market_value" in values:
            market_value = values["market_value"]
            if market_value is not None and (not math.isfinite(market_value) or market_value < 0):
                raise ValidationFailedError("market_value must be a non-negative number", field="market_value")
            cleaned["market_value"] = market_value

        return cleaned

    @staticmethod
    def _to_upload(entry) -> ImageUpload:
        return ImageUpload(
            data=getattr(entry, "base64", None) or "",
            original_filename=getattr(entry, "originalname", None),
            mime_type=getattr(entry, "mimetype", None),
        )

    def _with_resolved_urls(self, item: Item) -> Item:
        if not item.images:
            return item
        data = item.model_dump()
        data["images"] = [
            {**image, "url": self._images.resolve_url(image["storage_path"])}
            for image in data["images"]
        ]
        return Item.model_validate(data)
