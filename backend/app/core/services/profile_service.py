from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.errors import ConflictError, StorageFailureError
from app.core.models.profile import Profile, ProfileDefaults, Role
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from app.core.repositories.profile_repository import ProfileRepository

logger = get_logger(__name__)


class ProfileService:
    """Get-or-create access to profiles.

    Profiles are also created out of band by a database trigger when an
    identity signs up, so a missing row observed here may appear at any moment.
    Insert conflicts are therefore treated as success and resolved by re-reading.
    """

    def __init__(self, repo: ProfileRepository) -> None:
        self._repo = repo

    async def get_profile(self, subject_id: str) -> Profile | None:
        return await self._repo.get(subject_id)

    async def ensure_profile(self, subject_id: str, defaults: ProfileDefaults | None = None) -> Profile:
        existing = await self._repo.get(subject_id)
        if existing is not None:
            return existing

        defaults = defaults or ProfileDefaults()
        candidate = Profile(
            id=subject_id,
            full_name=defaults.full_name,
            role=defaults.role or Role.USER,
        )
        try:
            created = await self._repo.insert(candidate)
        except ConflictError:
            logger.info("Profile created concurrently, re-reading", extra={"user_id": subject_id})
            winner = await self._repo.get(subject_id)
            if winner is None:
                raise StorageFailureError("Profile insert conflicted but no row is readable") from None
            return winner

        logger.info("Profile created", extra={"user_id": subject_id, "role": created.role.value})
        return created
