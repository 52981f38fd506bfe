from __future__ import annotations

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from app.config import Settings, get_settings
from app.core.errors import (
    ProfileUnavailableError,
    StorageFailureError,
    UnauthenticatedError,
    UpstreamTimeoutError,
)
from app.core.models.profile import ProfileDefaults, Role
from app.core.repositories.image_storage import ImageStorage
from app.core.repositories.implementations.supabase.image_storage import SupabaseImageStorage
from app.core.repositories.implementations.supabase.item_repository import SupabaseItemRepository
from app.core.repositories.implementations.supabase.profile_repository import (
    SupabaseProfileRepository,
)
from app.core.repositories.item_repository import ItemRepository
from app.core.repositories.profile_repository import ProfileRepository
from app.core.schemas.auth import AuthContext
from app.core.services.access_control import authorize
from app.core.services.image_service import ImageService
from app.core.services.item_service import ItemService
from app.core.services.profile_service import ProfileService
from app.core.services.token_verifier import TokenVerifier
from app.db.base import get_admin_supabase_client, get_anon_supabase_client
from app.utils.logging import get_logger

logger = get_logger(__name__)

# Use auto_error=False so missing tokens produce our own 401 body
http_bearer = HTTPBearer(auto_error=False)


def get_admin_client(settings: Settings = Depends(get_settings)) -> Client:
    return get_admin_supabase_client(settings.supabase_url, settings.supabase_service_role_key)


def get_anon_client(settings: Settings = Depends(get_settings)) -> Client:
    return get_anon_supabase_client(settings.supabase_url, settings.supabase_anon_key)


def get_token_verifier(
    settings: Settings = Depends(get_settings),
    client: Client = Depends(get_anon_client),
) -> TokenVerifier:
    return TokenVerifier(client, timeout=settings.identity_timeout_seconds)


def get_profile_repository(
    settings: Settings = Depends(get_settings),
    client: Client = Depends(get_admin_client),
) -> ProfileRepository:
    return SupabaseProfileRepository(
        client,
        table_name=settings.profiles_table,
        timeout=settings.database_timeout_seconds,
    )


def get_profile_service(repo: ProfileRepository = Depends(get_profile_repository)) -> ProfileService:
    return ProfileService(repo)


def get_image_storage(
    settings: Settings = Depends(get_settings),
    client: Client = Depends(get_admin_client),
) -> ImageStorage:
    return SupabaseImageStorage(
        client,
        bucket=settings.image_bucket,
        timeout=settings.storage_timeout_seconds,
    )


def get_image_service(
    settings: Settings = Depends(get_settings),
    storage: ImageStorage = Depends(get_image_storage),
) -> ImageService:
    return ImageService(
        storage,
        max_bytes=settings.image_max_bytes,
        max_dimension=settings.image_max_dimension,
        allowed_mime_types=settings.image_allowed_mime_types,
    )


def get_item_repository(
    settings: Settings = Depends(get_settings),
    client: Client = Depends(get_admin_client),
) -> ItemRepository:
    return SupabaseItemRepository(
        client,
        items_table=settings.items_table,
        images_table=settings.item_images_table,
        timeout=settings.database_timeout_seconds,
    )


def get_item_service(
    settings: Settings = Depends(get_settings),
    repo: ItemRepository = Depends(get_item_repository),
    images: ImageService = Depends(get_image_service),
) -> ItemService:
    return ItemService(
        repo,
        images,
        max_images=settings.max_images_per_item,
        default_limit=settings.items_default_limit,
        max_limit=settings.items_max_limit,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(http_bearer),
    verifier: TokenVerifier = Depends(get_token_verifier),
    profiles: ProfileService = Depends(get_profile_service),
) -> AuthContext:
    """Verify the bearer token and resolve the caller's profile.

    A profile is created on first sight of an identity; the role always comes
    from the stored profile, never from token claims.
    """
    if not credentials:
        raise UnauthenticatedError("Authentication required")

    identity = await verifier.verify(credentials.credentials)

    try:
        profile = await profiles.ensure_profile(
            identity.subject_id,
            ProfileDefaults(full_name=identity.display_name()),
        )
    except UpstreamTimeoutError:
        raise
    except StorageFailureError as err:
        logger.error(
            "Profile resolution failed",
            extra={"user_id": identity.subject_id, "error_type": type(err).__name__},
        )
        raise ProfileUnavailableError("Could not resolve user profile") from err

    return AuthContext(
        subject_id=identity.subject_id,
        role=profile.role,
        email=identity.email,
        full_name=profile.full_name,
    )


def require_roles(*roles: Role | str):
    """Dependency factory admitting only callers holding one of ``roles``."""

    async def _require(ctx: AuthContext = Depends(get_current_user)) -> AuthContext:
        return authorize(ctx, roles)

    return _require
