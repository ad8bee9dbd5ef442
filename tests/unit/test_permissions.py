"""Unit tests for role default permissions."""

import pytest

from familyhub.models.account import Role
from familyhub.services.permissions import default_permissions_for_role


def test_admin_sees_everything():
    permissions = default_permissions_for_role(Role.ADMIN)
    assert all(permissions.model_dump().values())


def test_member_cannot_view_budget():
    permissions = default_permissions_for_role(Role.MEMBER)
    assert permissions.can_view_budget is False
    assert permissions.can_modify_items is True


def test_child_is_read_only_without_shopping():
    permissions = default_permissions_for_role(Role.CHILD)
    assert permissions.can_view_shopping is False
    assert permissions.can_modify_items is False
    assert permissions.can_view_calendar is True


@pytest.mark.parametrize("role", ["admin", "member", "child"])
def test_accepts_role_values(role):
    assert default_permissions_for_role(role) == default_permissions_for_role(Role(role))


def test_returns_independent_copies():
    first = default_permissions_for_role(Role.MEMBER)
    first.can_view_budget = True
    assert default_permissions_for_role(Role.MEMBER).can_view_budget is False


def test_serializes_camel_case():
    dumped = default_permissions_for_role(Role.ADMIN).model_dump(by_alias=True)
    assert set(dumped) == {
        "canViewCalendar",
        "canViewTasks",
        "canViewShopping",
        "canViewBudget",
        "canViewPlaces",
        "canModifyItems",
    }
