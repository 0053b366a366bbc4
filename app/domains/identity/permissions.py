"""Paste permissions and the role -> permission mapping."""

from typing import FrozenSet, Optional

from app.domains.identity.entities import User, ROLE_ADMIN, ROLE_USER

READ_PUBLIC = "read:public"
READ_AUTHENTICATED = "read:authenticated"
READ_INVITED = "read:invited"
READ_PRIVATE = "read:private"
READ_ANY = "read:any"
CREATE = "create"
UPDATE_OWN = "update:own"
UPDATE_ANY = "update:any"
DELETE_OWN = "delete:own"
DELETE_ANY = "delete:any"
MANAGE_PERMISSIONS = "manage-permissions"

ROLE_UNAUTHENTICATED = "unauthenticated"

ALL_PASTE_PERMISSIONS = frozenset({
    READ_PUBLIC, READ_AUTHENTICATED, READ_INVITED, READ_PRIVATE, READ_ANY,
    CREATE, UPDATE_OWN, UPDATE_ANY, DELETE_OWN, DELETE_ANY, MANAGE_PERMISSIONS,
})

ROLE_PERMISSIONS = {
    ROLE_UNAUTHENTICATED: frozenset({READ_PUBLIC}),
    ROLE_USER: frozenset({
        CREATE, READ_PUBLIC, READ_AUTHENTICATED, READ_INVITED, READ_PRIVATE,
        UPDATE_OWN, DELETE_OWN,
    }),
    ROLE_ADMIN: ALL_PASTE_PERMISSIONS,
}


def resolve_permissions(user: Optional[User]) -> FrozenSet[str]:
    """Permission set of a caller; missing, banned or inactive users get the anonymous set"""
    if user is None or user.is_banned or not user.is_active:
        return ROLE_PERMISSIONS[ROLE_UNAUTHENTICATED]
    return ROLE_PERMISSIONS.get(user.role, ROLE_PERMISSIONS[ROLE_UNAUTHENTICATED])
