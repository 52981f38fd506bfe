from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.core.models.profile import Profile


class ProfileRepository(ABC):
    """Abstract repository interface for profiles keyed by subject id."""

    @abstractmethod
    async def get(self, subject_id: str) -> Profile | None:  # pragma: no cover - interface only
        """Fetch a profile or return None if no row exists."""

    @abstractmethod
    async def insert(self, profile: Profile) -> Profile:  # pragma: no cover
        """Insert a new profile and return the stored row.

        Raises:
            ConflictError: a row with the same id already exists.
            StorageFailureError: any other storage failure.
        """
