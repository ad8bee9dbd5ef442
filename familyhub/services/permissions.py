"""Default feature permissions per family role."""

from familyhub.models.account import Permissions, Role

_ROLE_DEFAULTS = {
    Role.ADMIN: Permissions(
        can_view_calendar=True,
        can_view_tasks=True,
        can_view_shopping=True,
        can_view_budget=True,
        can_view_places=True,
        can_modify_items=True,
    ),
    Role.MEMBER: Permissions(
        can_view_calendar=True,
        can_view_tasks=True,
        can_view_shopping=True,
        can_view_budget=False,
        can_view_places=True,
        can_modify_items=True,
    ),
    Role.CHILD: Permissions(
        can_view_calendar=True,
        can_view_tasks=True,
        can_view_shopping=False,
        can_view_budget=False,
        can_view_places=True,
        can_modify_items=False,
    ),
}


def default_permissions_for_role(role: Role) -> Permissions:
    """Return a fresh copy of the default permissions for a role."""
    return _ROLE_DEFAULTS[Role(role)].model_copy()
