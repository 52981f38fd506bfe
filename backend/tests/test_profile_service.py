"""Tests for get-or-create profile reconciliation."""

from __future__ import annotations

import asyncio

import pytest

from app.core.errors import StorageFailureError
from app.core.models.profile import Profile, ProfileDefaults, Role
from app.core.services.profile_service import ProfileService

from .conftest import InMemoryProfileRepository


@pytest.fixture
def repo() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def service(repo: InMemoryProfileRepository) -> ProfileService:
    return ProfileService(repo)


class TestEnsureProfile:
    @pytest.mark.asyncio
    async def test_existing_profile_is_returned_unchanged(
        self, repo: InMemoryProfileRepository, service: ProfileService
    ) -> None:
        repo.rows["u-1"] = Profile(id="u-1", full_name="Stored Name", role=Role.ADMIN)

        profile = await service.ensure_profile(
            "u-1", ProfileDefaults(full_name="Other Name", role=Role.USER)
        )

        assert profile.role == Role.ADMIN
        assert profile.full_name == "Stored Name"
        assert repo.insert_calls == 0

    @pytest.mark.asyncio
    async def test_missing_profile_is_created_with_user_role(
        self, repo: InMemoryProfileRepository, service: ProfileService
    ) -> None:
        profile = await service.ensure_profile("u-2", ProfileDefaults(full_name="New Person"))

        assert profile.id == "u-2"
        assert profile.role == Role.USER
        assert profile.full_name == "New Person"
        assert repo.rows["u-2"].role == Role.USER

    @pytest.mark.asyncio
    async def test_defaults_are_optional(self, service: ProfileService) -> None:
        profile = await service.ensure_profile("u-3")
        assert profile.role == Role.USER
        assert profile.full_name is None

    @pytest.mark.asyncio
    async def test_trigger_created_row_wins_the_conflict(
        self, repo: InMemoryProfileRepository, service: ProfileService
    ) -> None:
        async def trigger(profile: Profile) -> None:
            repo.rows[profile.id] = Profile(id=profile.id, full_name="From Trigger", role=Role.ADMIN)

        repo.before_insert = trigger

        profile = await service.ensure_profile("u-4", ProfileDefaults(full_name="From Request"))

        assert profile.full_name == "From Trigger"
        assert profile.role == Role.ADMIN
        assert len(repo.rows) == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_converge(
        self, repo: InMemoryProfileRepository, service: ProfileService
    ) -> None:
        results = await asyncio.gather(
            service.ensure_profile("u-5", ProfileDefaults(full_name="A")),
            service.ensure_profile("u-5", ProfileDefaults(full_name="B")),
        )

        # Both callers saw no row, both tried to insert, one lost and re-read
        assert repo.insert_calls == 2
        assert len(repo.rows) == 1
        assert results[0] == results[1]
        assert results[0].role == Role.USER

    @pytest.mark.asyncio
    async def test_conflict_without_readable_row_is_a_storage_failure(
        self, repo: InMemoryProfileRepository, service: ProfileService
    ) -> None:
        async def vanishing_trigger(profile: Profile) -> None:
            repo.rows[profile.id] = profile
            original_get = repo.get

            async def get_nothing(subject_id: str) -> Profile | None:
                await original_get(subject_id)
                return None

            repo.get = get_nothing  # type: ignore[method-assign]

        repo.before_insert = vanishing_trigger

        with pytest.raises(StorageFailureError):
            await service.ensure_profile("u-6")

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(
        self, repo: InMemoryProfileRepository, service: ProfileService
    ) -> None:
        repo.fail_with = StorageFailureError("database unavailable")

        with pytest.raises(StorageFailureError):
            await service.ensure_profile("u-7")
        assert repo.rows == {}


class TestProfileModel:
    def test_long_full_name_is_truncated(self) -> None:
        profile = Profile(id="u-8", full_name="x" * 300)
        assert len(profile.full_name) == 255

    def test_blank_full_name_becomes_none(self) -> None:
        assert Profile(id="u-9", full_name="   ").full_name is None
