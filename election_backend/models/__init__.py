"""Models package: import all models so metadata.create_all can discover them."""

from election_backend.models.school import School
from election_backend.models.role import (
    Role, Permission, RolePermission, UserRole,
    RoleScope, GlobalScope, TenantScope, scope_from_school_id,
)
from election_backend.models.user import User

__all__ = [
    "School", "User",
    "Role", "Permission", "RolePermission", "UserRole",
    "RoleScope", "GlobalScope", "TenantScope", "scope_from_school_id",
]
