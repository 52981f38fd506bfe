"""Shared fixtures for the marketplace API tests.

Supabase is replaced at the seams the services depend on: in-memory
repositories and storage, plus a fake Supabase auth client so the real
TokenVerifier runs against canned users.
"""

from __future__ import annotations

import asyncio
import base64
import io
import os
import time
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

# Settings are read when app.main is imported
os.environ.setdefault("APP_SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("APP_SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("APP_SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app.core.errors import ConflictError, StorageFailureError
from app.core.models.base import utc_now
from app.core.models.profile import Profile, Role
from app.core.repositories.image_storage import ImageStorage
from app.core.repositories.item_repository import ItemRepository
from app.core.repositories.profile_repository import ProfileRepository
from app.core.services.image_service import ImageService
from app.core.services.item_service import ItemService
from app.dependencies import (
    get_anon_client,
    get_image_storage,
    get_item_repository,
    get_profile_repository,
)
from app.main import app

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from uuid import UUID

    from app.core.models.item import Item, ItemStatus

API = "/api/v1"

ADMIN_ID = "7d1c2a52-5a7e-4c1e-9f1e-0a6b3c9d2e01"
ALICE_ID = "3f9b8e61-2c4d-4b7a-8e5f-1d2c3b4a5f02"
BOB_ID = "c2e4a6b8-1d3f-4a5c-9e7b-2f4d6c8a0b03"

ADMIN_TOKEN = "eyJhbGciOiJIUzI1NiJ9.admin.signature"
ALICE_TOKEN = "eyJhbGciOiJIUzI1NiJ9.alice.signature"
BOB_TOKEN = "eyJhbGciOiJIUzI1NiJ9.bob.signature"
EXPIRED_TOKEN = "eyJhbGciOiJIUzI1NiJ9.expired.signature"


# ============================================================================
# Image helpers
# ============================================================================


def make_image(fmt: str = "PNG", size: tuple[int, int] = (8, 8), color: Any = (200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    mode = "P" if fmt == "GIF" else "RGB"
    Image.new(mode, size, color if mode == "RGB" else 1).save(buf, format=fmt)
    return buf.getvalue()


def data_url(content: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def image_entry(name: str = "photo.png", content: bytes | None = None, mime: str = "image/png") -> dict[str, Any]:
    content = content if content is not None else make_image()
    return {"base64": data_url(content, mime), "originalname": name, "mimetype": mime, "size": len(content)}


# ============================================================================
# In-memory collaborators
# ============================================================================


class InMemoryProfileRepository(ProfileRepository):
    """Profiles keyed by subject id with a unique-key check on insert.

    Every call yields to the event loop so concurrent callers interleave.
    ``before_insert`` lets a test create the row out of band, the way the
    signup trigger does.
    """

    def __init__(self) -> None:
        self.rows: dict[str, Profile] = {}
        self.insert_calls = 0
        self.before_insert: Callable[[Profile], Awaitable[None]] | None = None
        self.fail_with: Exception | None = None

    async def get(self, subject_id: str) -> Profile | None:
        await asyncio.sleep(0)
        if self.fail_with:
            raise self.fail_with
        return self.rows.get(subject_id)

    async def insert(self, profile: Profile) -> Profile:
        self.insert_calls += 1
        if self.fail_with:
            raise self.fail_with
        if self.before_insert:
            await self.before_insert(profile)
        await asyncio.sleep(0)
        if profile.id in self.rows:
            raise ConflictError("duplicate key value violates unique constraint")
        self.rows[profile.id] = profile
        return profile


class InMemoryImageStorage(ImageStorage):
    base_url = "https://project.supabase.test/storage/v1/object/public/item-images"

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_calls = 0
        self.deleted: list[str] = []
        # 1-based put call numbers that fail
        self.fail_on_put: set[int] = set()
        self.failure: type[StorageFailureError] = StorageFailureError
        # Simulates an upload that lands even though the caller saw a failure
        self.land_failed_uploads = False

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        self.put_calls += 1
        if self.put_calls in self.fail_on_put:
            if self.land_failed_uploads:
                self.objects[key] = (content, content_type)
            raise self.failure("upload failed")
        if key in self.objects:
            raise StorageFailureError("object already exists")
        self.objects[key] = (content, content_type)
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


class InMemoryItemRepository(ItemRepository):
    def __init__(self) -> None:
        self.rows: dict[UUID, Item] = {}
        self.fail_on_create: Exception | None = None

    async def create(self, item: Item) -> Item:
        if self.fail_on_create:
            raise self.fail_on_create
        self.rows[item.id] = item.model_copy(deep=True)
        return item

    async def get(self, item_id: UUID) -> Item | None:
        item = self.rows.get(item_id)
        return item.model_copy(deep=True) if item else None

    async def list(
        self,
        *,
        statuses: Sequence[ItemStatus],
        category: str | None = None,
        owner_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Item]:
        items = [
            i for i in self.rows.values()
            if (not statuses or i.status in statuses)
            and (category is None or i.category == category)
            and (owner_id is None or i.owner_id == owner_id)
        ]
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items[offset:offset + limit]

    async def update(self, item_id: UUID, changes: dict[str, Any]) -> Item | None:
        if item_id not in self.rows:
            return None
        self.rows[item_id] = self.rows[item_id].model_copy(update={**changes, "updated_at": utc_now()})
        return self.rows[item_id].model_copy(deep=True)

    async def update_status(self, item_id: UUID, status: ItemStatus) -> Item | None:
        if item_id not in self.rows:
            return None
        self.rows[item_id] = self.rows[item_id].model_copy(update={"status": status, "updated_at": utc_now()})
        return self.rows[item_id]

    async def delete(self, item_id: UUID) -> bool:
        return self.rows.pop(item_id, None) is not None


class FakeAuthApiError(Exception):
    """Shaped like supabase's AuthApiError: a message plus an HTTP status."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class FakeAuthApi:
    def __init__(self) -> None:
        self.users: dict[str, SimpleNamespace] = {}
        self.expired: set[str] = set()
        self.calls = 0

    def add_user(self, token: str, user_id: str, email: str, **metadata: Any) -> None:
        self.users[token] = SimpleNamespace(id=user_id, email=email, user_metadata=metadata)

    def get_user(self, jwt: str | None = None) -> SimpleNamespace:
        self.calls += 1
        if jwt in self.expired:
            raise FakeAuthApiError("invalid JWT: unable to parse or verify signature, token is expired", 403)
        user = self.users.get(jwt)
        if user is None:
            raise FakeAuthApiError("invalid JWT: unable to parse or verify signature", 403)
        return SimpleNamespace(user=user)


class FakeSupabaseClient:
    def __init__(self) -> None:
        self.auth = FakeAuthApi()


class FakeQuery:
    """A PostgREST query builder that records the chained calls."""

    def __init__(self, client: FakePostgrestClient, table: str) -> None:
        self._client = client
        self.table = table
        self.ops: list[tuple[str, tuple[Any, ...]]] = []

    def __getattr__(self, name: str) -> Callable[..., FakeQuery]:
        if name not in {"select", "insert", "update", "delete", "eq", "in_", "order", "range", "limit"}:
            raise AttributeError(name)

        def _record(*args: Any, **kwargs: Any) -> FakeQuery:
            self.ops.append((name, args))
            return self

        return _record

    def op(self, name: str) -> tuple[Any, ...] | None:
        return next((args for op, args in self.ops if op == name), None)

    def execute(self) -> SimpleNamespace:
        self._client.executed.append(self)
        return SimpleNamespace(data=self._client.handler(self))


class FakePostgrestClient:
    """Routes every executed query through ``handler(query) -> data``."""

    def __init__(self, handler: Callable[[FakeQuery], Any]) -> None:
        self.handler = handler
        self.executed: list[FakeQuery] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


class SlowInsertTable:
    """Rows of one table whose inserts commit only after ``insert_delay`` seconds.

    Mimics a PostgREST write that outlives the caller's timeout and still lands.
    """

    def __init__(self, table: str, insert_delay: float) -> None:
        self.table = table
        self.insert_delay = insert_delay
        self.rows: list[dict[str, Any]] = []

    def __call__(self, q: FakeQuery) -> Any:
        if q.table != self.table:
            return []
        if q.op("insert") is not None:
            payload = q.op("insert")[0]
            rows = payload if isinstance(payload, list) else [payload]
            time.sleep(self.insert_delay)
            self.rows.extend(rows)
            return rows
        if q.op("delete") is not None:
            column, value = q.op("eq")
            removed = [r for r in self.rows if r[column] == value]
            self.rows = [r for r in self.rows if r[column] != value]
            return removed
        return list(self.rows)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def profile_repo() -> InMemoryProfileRepository:
    repo = InMemoryProfileRepository()
    repo.rows[ADMIN_ID] = Profile(id=ADMIN_ID, full_name="Site Admin", role=Role.ADMIN)
    return repo


@pytest.fixture
def image_storage() -> InMemoryImageStorage:
    return InMemoryImageStorage()


@pytest.fixture
def item_repo() -> InMemoryItemRepository:
    return InMemoryItemRepository()


@pytest.fixture
def image_service(image_storage: InMemoryImageStorage) -> ImageService:
    return ImageService(image_storage, max_bytes=256 * 1024, max_dimension=64)


@pytest.fixture
def item_service(item_repo: InMemoryItemRepository, image_service: ImageService) -> ItemService:
    return ItemService(item_repo, image_service, max_images=5)


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    client = FakeSupabaseClient()
    client.auth.add_user(ADMIN_TOKEN, ADMIN_ID, "admin@example.com", full_name="Site Admin")
    client.auth.add_user(ALICE_TOKEN, ALICE_ID, "alice@example.com", full_name="Alice Seller")
    client.auth.add_user(BOB_TOKEN, BOB_ID, "bob@example.com")
    client.auth.expired.add(EXPIRED_TOKEN)
    return client


@pytest.fixture
def api_app(
    fake_supabase: FakeSupabaseClient,
    profile_repo: InMemoryProfileRepository,
    item_repo: InMemoryItemRepository,
    image_storage: InMemoryImageStorage,
):
    """The application with Supabase swapped for the in-memory collaborators."""
    app.dependency_overrides[get_anon_client] = lambda: fake_supabase
    app.dependency_overrides[get_profile_repository] = lambda: profile_repo
    app.dependency_overrides[get_item_repository] = lambda: item_repo
    app.dependency_overrides[get_image_storage] = lambda: image_storage
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api_app):
    with TestClient(api_app) as test_client:
        yield test_client


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
