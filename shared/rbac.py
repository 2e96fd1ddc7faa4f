"""
Role-based access control

Permissions are granted through a static role -> permission table; users carry
exactly one role. Every predicate treats a missing user as unauthorised.
"""

import enum
from typing import Callable, Dict, Iterable, List, Optional, Protocol


class Role(str, enum.Enum):
    USER = "user"
    VENDOR = "vendor"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Permission(str, enum.Enum):
    READ_PRODUCTS = "read:products"
    CREATE_PRODUCTS = "create:products"
    UPDATE_PRODUCTS = "update:products"
    DELETE_PRODUCTS = "delete:products"
    MANAGE_USERS = "manage:users"
    MANAGE_VENDORS = "manage:vendors"
    ACCESS_ADMIN = "access:admin"
    ACCESS_MARKETPLACE = "access:marketplace"
    ACCESS_CHAT = "access:chat"
    MODERATE_CONTENT = "moderate:content"


class HasRole(Protocol):
    role: Role


_BASE_PERMISSIONS = [
    Permission.READ_PRODUCTS,
    Permission.ACCESS_MARKETPLACE,
    Permission.ACCESS_CHAT,
]

ROLE_PERMISSIONS: Dict[Role, List[Permission]] = {
    Role.USER: list(_BASE_PERMISSIONS),
    Role.VENDOR: _BASE_PERMISSIONS + [
        Permission.CREATE_PRODUCTS,
        Permission.UPDATE_PRODUCTS,
        Permission.DELETE_PRODUCTS,
    ],
    Role.MODERATOR: _BASE_PERMISSIONS + [
        Permission.MODERATE_CONTENT,
    ],
    Role.ADMIN: list(Permission),
}


def _role_of(user: Optional[HasRole]) -> Optional[Role]:
    if user is None:
        return None
    try:
        return Role(user.role)
    except ValueError:
        return None


def get_all_permissions(role) -> List[Permission]:
    """Permissions granted to ``role``; empty for unknown roles"""
    try:
        return list(ROLE_PERMISSIONS.get(Role(role), []))
    except ValueError:
        return []


def has_permission(user: Optional[HasRole], permission: Permission) -> bool:
    role = _role_of(user)
    if role is None:
        return False
    try:
        return Permission(permission) in ROLE_PERMISSIONS.get(role, [])
    except ValueError:
        return False


def has_role(user: Optional[HasRole], role: Role) -> bool:
    current = _role_of(user)
    if current is None:
        return False
    try:
        return current == Role(role)
    except ValueError:
        return False


def has_any_permission(user: Optional[HasRole], permissions: Iterable[Permission]) -> bool:
    if user is None:
        return False
    return any(has_permission(user, permission) for permission in permissions)


def has_all_permissions(user: Optional[HasRole], permissions: Iterable[Permission]) -> bool:
    if user is None:
        return False
    return all(has_permission(user, permission) for permission in permissions)


def create_permission_guard(permission: Permission) -> Callable[[Optional[HasRole]], bool]:
    return lambda user: has_permission(user, permission)


def create_role_guard(role: Role) -> Callable[[Optional[HasRole]], bool]:
    return lambda user: has_role(user, role)


guards: Dict[str, Callable[[Optional[HasRole]], bool]] = {
    "can_manage_users": create_permission_guard(Permission.MANAGE_USERS),
    "can_manage_vendors": create_permission_guard(Permission.MANAGE_VENDORS),
    "can_access_admin": create_permission_guard(Permission.ACCESS_ADMIN),
    "can_create_products": create_permission_guard(Permission.CREATE_PRODUCTS),
    "can_update_products": create_permission_guard(Permission.UPDATE_PRODUCTS),
    "can_delete_products": create_permission_guard(Permission.DELETE_PRODUCTS),
    "can_moderate_content": create_permission_guard(Permission.MODERATE_CONTENT),
    "is_admin": create_role_guard(Role.ADMIN),
    "is_vendor": create_role_guard(Role.VENDOR),
    "is_moderator": create_role_guard(Role.MODERATOR),
}
