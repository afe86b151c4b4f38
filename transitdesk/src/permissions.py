"""
Role to capability matrix.

Every role is granted a fixed set of `Permission` values. Handlers never
compare role names themselves, they ask `validators.userPermission` whether
the caller's role holds the capability required by the operation.
"""

from typing import Dict, FrozenSet

from transitdesk.src.enums import Permission, UserRole


# Capabilities shared by every account able to manage transit data
MANAGER_PERMISSIONS = frozenset(
    {
        Permission.CREATE_USER,
        Permission.LIST_USER,
        Permission.UPDATE_USER,
        Permission.DELETE_USER,
        Permission.UPDATE_AGENCY,
        Permission.ASSIGN_TRIP_ROUTE,
        Permission.MANAGE_ROUTE,
        Permission.MANAGE_TRIP,
        Permission.MANAGE_CALENDAR,
        Permission.MANAGE_SHAPE,
        Permission.MANAGE_DRIVER,
        Permission.MANAGE_STUDENT,
        Permission.REPLY_MESSAGE,
        Permission.READ_ALL_MESSAGE,
    }
)

SUPERADMIN_PERMISSIONS = MANAGER_PERMISSIONS | frozenset(
    {
        Permission.CREATE_ADMIN,
        Permission.CREATE_AGENCY,
        Permission.LIST_AGENCY,
        Permission.UPDATE_AGENCY_IDENTITY,
        Permission.DELETE_AGENCY,
        Permission.VIEW_ANY_AGENCY,
        Permission.ASSIGN_AGENCY_ADMIN,
        Permission.ASSIGN_ROUTE_AGENCY,
    }
)

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.SUPERADMIN: SUPERADMIN_PERMISSIONS,
    UserRole.ADMIN: MANAGER_PERMISSIONS,
    UserRole.PARENT: frozenset(),
}

# Agency fields an admin is allowed to change
ADMIN_AGENCY_FIELDS = frozenset({"email", "phone", "website", "routes"})


def hasPermission(role: str, permission: Permission) -> bool:
    try:
        return permission in ROLE_PERMISSIONS[UserRole(role)]
    except ValueError:
        return False
