"""Tests for role checks."""

from __future__ import annotations

import pytest

from app.core.errors import ForbiddenError
from app.core.models.profile import Role
from app.core.schemas.auth import AuthContext
from app.core.services.access_control import authorize, can_manage_item


def _ctx(role: Role, subject_id: str = "u-1") -> AuthContext:
    return AuthContext(subject_id=subject_id, role=role)


class TestAuthorize:
    def test_matching_role_passes(self) -> None:
        ctx = _ctx(Role.ADMIN)
        assert authorize(ctx, [Role.ADMIN]) is ctx

    def test_any_of_several_roles(self) -> None:
        ctx = _ctx(Role.USER)
        assert authorize(ctx, [Role.ADMIN, Role.USER]) is ctx

    def test_empty_requirement_admits_everyone(self) -> None:
        ctx = _ctx(Role.USER)
        assert authorize(ctx, []) is ctx

    def test_role_names_are_accepted(self) -> None:
        ctx = _ctx(Role.ADMIN)
        assert authorize(ctx, ["admin"]) is ctx

    def test_missing_role_is_forbidden(self) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            authorize(_ctx(Role.USER), [Role.ADMIN])
        assert exc_info.value.status_code == 403


class TestCanManageItem:
    def test_owner(self) -> None:
        assert can_manage_item(_ctx(Role.USER, "owner"), "owner")

    def test_other_user(self) -> None:
        assert not can_manage_item(_ctx(Role.USER, "someone-else"), "owner")

    def test_admin(self) -> None:
        assert can_manage_item(_ctx(Role.ADMIN, "admin"), "owner")
