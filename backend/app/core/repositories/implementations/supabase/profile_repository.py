from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.core.errors import StorageFailureError
from app.core.models.profile import Profile
from app.core.repositories.implementations.supabase.errors import first_row, run_query
from app.core.repositories.profile_repository import ProfileRepository

if TYPE_CHECKING:
    from supabase import Client


class SupabaseProfileRepository(ProfileRepository):
    """Supabase implementation of the ProfileRepository.

    Expects the service-role client: profile reconciliation is a privileged
    server operation and must not be blocked by per-user row policies.
    """

    def __init__(self, client: Client, *, table_name: str = "profiles", timeout: float = 10.0) -> None:
        self._client: Client = client
        self._table = table_name
        self._timeout = timeout

    async def get(self, subject_id: str) -> Profile | None:
        resp = await run_query(
            lambda: self._client.table(self._table)
            .select("*")
            .eq("id", subject_id)
            .limit(1)
            .execute(),
            timeout=self._timeout,
            operation="profile lookup",
        )
        rows = resp.data or []
        if not rows:
            return None
        return self._row_to_profile(rows[0])

    async def insert(self, profile: Profile) -> Profile:
        row = self._profile_to_row(profile)
        resp = await run_query(
            lambda: self._client.table(self._table).insert(row).execute(),
            timeout=self._timeout,
            operation="profile insert",
        )
        data = first_row(resp.data)
        if not data:
            raise StorageFailureError("Profile insert returned no row")
        return self._row_to_profile(data)

    @staticmethod
    def _row_to_profile(row: dict[str, Any]) -> Profile:
        # The table may carry columns this service does not own (avatar_url, ...)
        known = {k: v for k, v in row.items() if k in Profile.model_fields}
        return Profile.model_validate(known)

    @staticmethod
    def _profile_to_row(profile: Profile) -> dict[str, Any]:
        data = profile.model_dump(mode="json", exclude_none=True)
        data.pop("updated_at", None)
        return data
