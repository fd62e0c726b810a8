"""Role-based permission checks for family members."""

import logging
from enum import StrEnum

from fantastic_task.core.errors import PermissionDeniedError
from fantastic_task.core.logging import log_with_member_context
from fantastic_task.domain.member import Member, MemberRole


logger = logging.getLogger(__name__)


class Permission(StrEnum):
    """Actions gated by member role."""

    MANAGE_FAMILY = "manage_family"
    INVITE_MEMBERS = "invite_members"
    REMOVE_MEMBERS = "remove_members"
    CHANGE_ROLES = "change_roles"
    AWARD_BONUS_POINTS = "award_bonus_points"
    VIEW_ALL_STATS = "view_all_stats"
    EDIT_TASKS = "edit_tasks"
    ASSIGN_TASKS = "assign_tasks"
    VERIFY_COMPLETIONS = "verify_completions"
    COMPLETE_OWN_TASKS = "complete_own_tasks"
    VIEW_POINTS = "view_points"
    EDIT_OWN_PROFILE = "edit_own_profile"
    EDIT_MEMBER_PROFILE = "edit_member_profile"


_ADULTS = frozenset({MemberRole.ADMIN, MemberRole.MEMBER})
_EVERYONE = frozenset(MemberRole)

_ROLE_PERMISSIONS: dict[Permission, frozenset[MemberRole]] = {
    Permission.MANAGE_FAMILY: frozenset({MemberRole.ADMIN}),
    Permission.INVITE_MEMBERS: frozenset({MemberRole.ADMIN}),
    Permission.REMOVE_MEMBERS: frozenset({MemberRole.ADMIN}),
    Permission.CHANGE_ROLES: frozenset({MemberRole.ADMIN}),
    Permission.AWARD_BONUS_POINTS: frozenset({MemberRole.ADMIN}),
    Permission.VIEW_ALL_STATS: _ADULTS,
    Permission.EDIT_TASKS: _ADULTS,
    Permission.ASSIGN_TASKS: _ADULTS,
    Permission.VERIFY_COMPLETIONS: _ADULTS,
    Permission.COMPLETE_OWN_TASKS: _EVERYONE,
    Permission.VIEW_POINTS: _EVERYONE,
}


def has_permission(member: Member | None, action: str, target_member: Member | None = None) -> bool:
    """Check whether a member may perform an action.

    Args:
        member: The acting member, or None when nobody is signed in
        action: Permission name; unknown names are never allowed
        target_member: The member being acted on, for profile edits

    Returns:
        True if the action is allowed
    """
    if member is None:
        return False

    try:
        permission = Permission(action)
    except ValueError:
        return False

    if permission == Permission.EDIT_OWN_PROFILE:
        return target_member is not None and target_member.id == member.id

    if permission == Permission.EDIT_MEMBER_PROFILE:
        if member.role == MemberRole.ADMIN:
            return True
        return member.role == MemberRole.MEMBER and target_member is not None and target_member.is_child

    return member.role in _ROLE_PERMISSIONS[permission]


def require_permission(member: Member, action: Permission, target_member: Member | None = None) -> None:
    """Raise PermissionDeniedError unless the member may perform the action."""
    if has_permission(member, action, target_member):
        return

    log_with_member_context(
        logger,
        "warning",
        "Permission denied",
        member_id=member.id,
        role=member.role,
        action=action,
    )
    msg = f"Member {member.id} ({member.role}) is not allowed to {action.replace('_', ' ')}"
    raise PermissionDeniedError(msg)
