from __future__ import annotations

from uuid import UUID  # noqa: TCH003

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.v1.schemas.item import ItemCreate, ItemRead, ItemStatusUpdate, ItemUpdate
from app.core.models.item import ItemStatus
from app.core.models.profile import Role
from app.core.schemas.auth import AuthContext  # noqa: TCH001
from app.core.services.item_service import ItemService  # noqa: TCH001
from app.dependencies import get_current_user, get_item_service, require_roles

router = APIRouter(
    responses={
        400: {"description": "Invalid request"},
        401: {"description": "Unauthorized"},
    }
)


@router.post("", response_model=ItemRead, status_code=status.HTTP_201_CREATED, include_in_schema=False)
@router.post(
    "/",
    response_model=ItemRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        422: {"description": "An attached image was rejected"},
        502: {"description": "Image or item storage failed"},
    },
)
async def create_item(
    payload: ItemCreate,
    current_user: AuthContext = Depends(get_current_user),
    service: ItemService = Depends(get_item_service),
):
    """Create a listing owned by the caller, storing all attached images or none."""
    item = await service.create_item(current_user, payload)
    return ItemRead.model_validate(item)


@router.get("", response_model=list[ItemRead], include_in_schema=False)
@router.get("/", response_model=list[ItemRead])
async def list_items(
    status_filter: ItemStatus | None = Query(default=None, alias="status"),
    category: str | None = None,
    owner_id: str | None = None,
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
    service: ItemService = Depends(get_item_service),
):
    items = await service.list_items(
        status=status_filter,
        category=category,
        owner_id=owner_id,
        limit=limit,
        offset=offset,
    )
    return [ItemRead.model_validate(i) for i in items]


@router.get("/{item_id}", response_model=ItemRead)
async def get_item(
    item_id: UUID,
    service: ItemService = Depends(get_item_service),
):
    item = await service.get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return ItemRead.model_validate(item)


@router.patch(
    "/{item_id}",
    response_model=ItemRead,
    responses={403: {"description": "Not the owner"}, 404: {"description": "Item not found"}},
)
async def update_item(
    item_id: UUID,
    payload: ItemUpdate,
    current_user: AuthContext = Depends(get_current_user),
    service: ItemService = Depends(get_item_service),
):
    """Edit listing fields; the owner or an admin may change any subset of them."""
    item = await service.update_item(current_user, item_id, payload)
    return ItemRead.model_validate(item)


@router.patch(
    "/{item_id}/status",
    response_model=ItemRead,
    responses={403: {"description": "Admin role required"}, 404: {"description": "Item not found"}},
)
async def update_item_status(
    item_id: UUID,
    payload: ItemStatusUpdate,
    current_user: AuthContext = Depends(require_roles(Role.ADMIN)),
    service: ItemService = Depends(get_item_service),
):
    item = await service.update_status(current_user, item_id, payload.status)
    return ItemRead.model_validate(item)


@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"description": "Not the owner"}, 404: {"description": "Item not found"}},
)
async def delete_item(
    item_id: UUID,
    current_user: AuthContext = Depends(get_current_user),
    service: ItemService = Depends(get_item_service),
):
    await service.delete_item(current_user, item_id)
    return None
