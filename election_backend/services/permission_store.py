"""Permission store: read-only queries over the user/role/permission graph.

Every authorization decision in the system is derived from two values read
here: a user's effective permission set and their maximum role level. Reads
fail closed: a database error is logged and answered with ``False`` / ``0``,
never with an implicit allow.
"""

import logging
import re
from typing import List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from election_backend.core.exceptions import InternalInconsistency, NotFound
from election_backend.models.role import (
    Permission, Role, RolePermission, RoleScope, UserRole,
)

logger = logging.getLogger("election_backend")

# "<domain>.<action>", dotted segments of lowercase words.
PERMISSION_NAME_RE = re.compile(r"^[a-z0-9_]+(\.[a-z0-9_]+)+$")


def is_valid_permission_name(name: object) -> bool:
    return isinstance(name, str) and bool(PERMISSION_NAME_RE.match(name))


class PermissionStore:
    """Read access to the role/permission graph through one session.

    The store issues all of its reads on the caller's session, so a single
    decision (or an administration call wrapped in ``atomic``) observes one
    consistent transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def has_permission(self, user_id: int, permission_name: str) -> bool:
        """True iff some role held by ``user_id`` grants ``permission_name``."""
        if not is_valid_permission_name(permission_name):
            return False
        stmt = (
            select(RolePermission.permission_id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(UserRole.user_id == user_id, Permission.name == permission_name)
            .limit(1)
        )
        try:
            return self.db.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error("has_permission(%s, %s) failed, denying: %s", user_id, permission_name, e)
            return False

    def _query_max_level(self, user_id: int) -> int:
        stmt = (
            select(func.max(Role.level))
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
        )
        return self.db.execute(stmt).scalar() or 0

    def max_role_level(self, user_id: int) -> int:
        """Highest level among the user's roles; 0 when the user holds none.

        A failed read also yields 0, the floor of privilege. Use this for the
        acting user only: for the user being acted upon, 0 would make the
        hierarchy guard pass. See ``target_role_level``.
        """
        try:
            return self._query_max_level(user_id)
        except SQLAlchemyError as e:
            logger.error("max_role_level(%s) failed, using floor level: %s", user_id, e)
            return 0

    def target_role_level(self, user_id: int) -> Optional[int]:
        """``max_role_level`` for the target of an action; ``None`` when the read fails."""
        try:
            return self._query_max_level(user_id)
        except SQLAlchemyError as e:
            logger.error("target_role_level(%s) failed: %s", user_id, e)
            return None

    def role_level(self, role_name: str, scope: Optional[RoleScope] = None) -> int:
        """Level of the named role, optionally restricted to one scope.

        Raises:
            NotFound: If no such role exists.
            InternalInconsistency: If the store cannot be read.
        """
        try:
            query = self.db.query(Role.level).filter(Role.name == role_name)
            if scope is not None:
                query = query.filter(Role.school_id.is_(None) if scope.school_id is None
                                     else Role.school_id == scope.school_id)
            row = query.first()
        except SQLAlchemyError as e:
            logger.error("role_level(%s) failed: %s", role_name, e)
            raise InternalInconsistency(f"Could not read the level of role '{role_name}'")
        if row is None:
            raise NotFound(f"Role '{role_name}' not found")
        return row[0]

    def roles_of(self, user_id: int) -> List[Role]:
        """Roles held by the user, highest level first."""
        try:
            return (
                self.db.query(Role)
                .join(UserRole, UserRole.role_id == Role.id)
                .filter(UserRole.user_id == user_id)
                .order_by(Role.level.desc(), Role.name.asc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("roles_of(%s) failed: %s", user_id, e)
            return []

    def permissions_of(self, role_id: int) -> Set[Permission]:
        try:
            return set(
                self.db.query(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .filter(RolePermission.role_id == role_id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("permissions_of(%s) failed: %s", role_id, e)
            return set()

    def effective_permissions(self, user_id: int) -> List[Permission]:
        """Union of the permissions of every role the user holds."""
        try:
            return (
                self.db.query(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .join(UserRole, UserRole.role_id == RolePermission.role_id)
                .filter(UserRole.user_id == user_id)
                .distinct()
                .order_by(Permission.name.asc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("effective_permissions(%s) failed: %s", user_id, e)
            return []

    def all_permissions(self) -> List[Permission]:
        try:
            return self.db.query(Permission).order_by(Permission.name.asc()).all()
        except SQLAlchemyError as e:
            logger.error("all_permissions() failed: %s", e)
            return []
