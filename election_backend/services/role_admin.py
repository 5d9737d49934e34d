"""Role administration: create, update, delete roles and assign them to users.

Each mutation runs in one transaction: the permission and hierarchy checks
read the same snapshot the writes are applied to, and any failure after the
first write rolls the whole call back.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from election_backend.core.config import settings
from election_backend.core.exceptions import (
    Conflict, InternalInconsistency, InvalidScope, NotFound, PermissionDenied, ValidationError,
)
from election_backend.db.session import atomic
from election_backend.models.role import (
    GlobalScope, Permission, Role, RolePermission, RoleScope, TenantScope, UserRole,
)
from election_backend.models.school import School
from election_backend.models.user import User
from election_backend.services.authorization import (
    Principal, check_role_assignment, require_hierarchy, require_permission, require_target_level,
)
from election_backend.services.permission_store import PermissionStore

logger = logging.getLogger("election_backend")

ALL_SCHOOLS_PERMISSION = "schools.view_all"
ROLE_SCOPE = "role_scope"


def _unique_ids(ids: Iterable[int]) -> List[int]:
    return list(dict.fromkeys(int(i) for i in ids))


class RoleAdminService:
    """Manages roles, their permission sets, and user-role assignments."""

    # ---- Reads ----

    @staticmethod
    def get_role(db: Session, actor: Principal, role_id: int) -> Role:
        require_permission(db, actor, "roles.view_all")
        role = RoleAdminService._get_role(db, role_id)
        RoleAdminService._require_role_access(db, actor, role)
        return role

    @staticmethod
    def role_permission_names(db: Session, actor: Principal, role_id: int) -> List[str]:
        require_permission(db, actor, "roles.view_all")
        role = RoleAdminService._get_role(db, role_id)
        RoleAdminService._require_role_access(db, actor, role)
        return sorted(p.name for p in PermissionStore(db).permissions_of(role.id))

    @staticmethod
    def list_permissions(db: Session, actor: Principal) -> List[Permission]:
        require_permission(db, actor, "roles.view_all")
        return PermissionStore(db).all_permissions()

    @staticmethod
    def list_assignable_roles(
        db: Session, actor: Principal, school_id: Optional[int] = None,
    ) -> List[Role]:
        """Roles below the actor's level, visible in one school.

        An actor who can see all schools must name the school; everyone else
        sees their own school. Global roles are visible in every school.
        """
        require_permission(db, actor, "roles.view_all")
        store = PermissionStore(db)
        max_level = store.max_role_level(actor.user_id)

        if store.has_permission(actor.user_id, ALL_SCHOOLS_PERMISSION):
            if school_id is None:
                raise InvalidScope("school_id is required to list roles across schools")
            target_school = school_id
        else:
            target_school = actor.school_id

        level_filter = (Role.level <= max_level if settings.HIERARCHY_ALLOW_EQUAL_LEVEL
                        else Role.level < max_level)
        scope_filter = Role.school_id.is_(None)
        if target_school is not None:
            scope_filter = or_(Role.school_id == target_school, Role.school_id.is_(None))

        return (
            db.query(Role)
            .filter(level_filter, scope_filter)
            .order_by(Role.level.desc(), Role.name.asc())
            .all()
        )

    @staticmethod
    def resolve_role_scope(
        db: Session, actor: Principal, is_global: bool, school_id: Optional[int],
    ) -> RoleScope:
        """Scope a new role is created in.

        Raises:
            InvalidScope: Actor may target any school but named none.
            PermissionDenied: Global role requested without cross-school rights,
                or the actor has no school of their own.
        """
        if PermissionStore(db).has_permission(actor.user_id, ALL_SCHOOLS_PERMISSION):
            if is_global:
                return GlobalScope()
            if school_id is None:
                raise InvalidScope("school_id is required unless the role is global")
            return TenantScope(school_id)
        if is_global:
            raise PermissionDenied(f"Global roles require '{ALL_SCHOOLS_PERMISSION}'")
        if actor.school_id is None:
            raise PermissionDenied("You are not attached to a school")
        return TenantScope(actor.school_id)

    # ---- Mutations ----

    @staticmethod
    def create_role(
        db: Session,
        actor: Principal,
        name: str,
        level: int,
        scope: RoleScope,
        permission_ids: Sequence[int] = (),
        color: str = "",
    ) -> Role:
        """Create a role strictly below the actor's level, with its permissions.

        Raises:
            PermissionDenied: Missing ``roles.create`` or insufficient hierarchy.
            Conflict: A role with this name exists in the same scope.
            InternalInconsistency: An unknown permission id was supplied.
        """
        name = RoleAdminService._clean_name(name)
        RoleAdminService._check_level(level)

        with atomic(db):
            require_permission(db, actor, "roles.create")
            if scope.school_id is not None and db.get(School, scope.school_id) is None:
                raise NotFound(f"School {scope.school_id} not found")
            RoleAdminService._ensure_unique_name(db, name, scope)
            require_hierarchy(
                db, actor, level, "Cannot create a role with privileges equal to or above your own",
            )
            role = Role(name=name, level=level, color=color or "", school_id=scope.school_id)
            db.add(role)
            try:
                db.flush()
            except IntegrityError:
                raise Conflict(f"Role '{name}' already exists in this scope")
            RoleAdminService._replace_permissions(db, actor, role, permission_ids)

        logger.info("user %s created role %s (%s, level %s)", actor.user_id, role.id, name, level)
        db.refresh(role)
        return role

    @staticmethod
    def update_role(
        db: Session,
        actor: Principal,
        role_id: int,
        name: Optional[str] = None,
        level: Optional[int] = None,
        color: Optional[str] = None,
        permission_ids: Optional[Sequence[int]] = None,
    ) -> Role:
        """Update role fields and optionally replace its permission set.

        The actor must outrank the role's current level and, when the level
        changes, the new level as well.
        """
        if name is None and level is None and color is None and permission_ids is None:
            raise ValidationError("No fields provided for update")

        with atomic(db):
            require_permission(db, actor, "roles.update")
            role = RoleAdminService._get_role(db, role_id)
            RoleAdminService._require_role_access(db, actor, role, change=True)
            require_hierarchy(
                db, actor, role.level, "Cannot modify a role with privileges equal to or above your own",
            )

            if name is not None:
                name = RoleAdminService._clean_name(name)
                RoleAdminService._ensure_unique_name(db, name, role.scope, exclude_id=role.id)
                role.name = name
            if level is not None:
                RoleAdminService._check_level(level)
                require_hierarchy(
                    db, actor, level, "Cannot raise a role to a level equal to or above your own",
                )
                role.level = level
            if color is not None:
                role.color = color.strip()

            try:
                db.flush()
            except IntegrityError:
                raise Conflict(f"Role '{role.name}' already exists in this scope")

            if permission_ids is not None:
                RoleAdminService._replace_permissions(db, actor, role, permission_ids)

        logger.info("user %s updated role %s", actor.user_id, role_id)
        db.refresh(role)
        return role

    @staticmethod
    def delete_role(db: Session, actor: Principal, role_id: int) -> None:
        """Delete a role and every assignment of it.

        The super-admin role can never be deleted here, whatever the actor's level.
        """
        with atomic(db):
            require_permission(db, actor, "roles.delete")
            role = RoleAdminService._get_role(db, role_id)
            if role.name == settings.SUPER_ADMIN_ROLE:
                raise PermissionDenied(
                    f"The '{settings.SUPER_ADMIN_ROLE}' role cannot be deleted", reason="protected_role",
                )
            RoleAdminService._require_role_access(db, actor, role, change=True)
            require_hierarchy(
                db, actor, role.level, "Cannot delete a role with privileges equal to or above your own",
            )
            db.query(UserRole).filter(UserRole.role_id == role.id).delete(synchronize_session=False)
            db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(
                synchronize_session=False
            )
            db.delete(role)

        logger.info("user %s deleted role %s", actor.user_id, role_id)

    @staticmethod
    def assign_roles(
        db: Session, actor: Principal, target_user_id: int, role_ids: Sequence[int],
    ) -> List[Role]:
        """Replace the target user's whole role set."""
        with atomic(db):
            require_permission(db, actor, "users.assign_roles")
            user = db.get(User, target_user_id)
            if user is None:
                raise NotFound(f"User {target_user_id} not found")
            roles = RoleAdminService.replace_user_roles(db, actor, user, role_ids)

        logger.info("user %s assigned roles %s to user %s", actor.user_id, [r.id for r in roles], user.id)
        return roles

    @staticmethod
    def replace_user_roles(
        db: Session, actor: Principal, user: User, role_ids: Sequence[int],
    ) -> List[Role]:
        """Swap a user's role edges inside the caller's transaction.

        All checks run before the first write: ``users.assign_roles``, role
        existence and school visibility, then the hierarchy guard on every
        proposed role and on the user's current maximum level.
        """
        require_permission(db, actor, "users.assign_roles")
        ids = _unique_ids(role_ids)
        roles = db.query(Role).filter(Role.id.in_(ids)).all() if ids else []
        missing = sorted(set(ids) - {r.id for r in roles})
        if missing:
            raise NotFound(f"Roles not found: {missing}")

        for role in roles:
            if role.school_id is not None and role.school_id != user.school_id:
                raise ValidationError(f"Role '{role.name}' belongs to another school")

        decision = check_role_assignment(
            db, actor, [r.level for r in roles], require_target_level(db, user.id),
        )
        if not decision.allowed:
            raise PermissionDenied(
                "Cannot assign roles to, or from, a privilege level equal to or above your own",
                reason=decision.reason,
            )

        db.query(UserRole).filter(UserRole.user_id == user.id).delete(synchronize_session=False)
        db.add_all(UserRole(user_id=user.id, role_id=r.id) for r in roles)
        db.flush()
        db.expire(user, ["roles"])
        return sorted(roles, key=lambda r: (-r.level, r.name))

    @staticmethod
    def grantable_permission_ids(
        db: Session, actor: Principal, permissions: Iterable[Permission],
    ) -> List[int]:
        """Ids of the permissions the actor may hand out: the ones it holds itself."""
        store = PermissionStore(db)
        permissions = list(permissions)
        if store.has_permission(actor.user_id, settings.ELEVATE_PRIVILEGES_PERMISSION):
            return [p.id for p in permissions]
        held = {p.id for p in store.effective_permissions(actor.user_id)}
        return [p.id for p in permissions if p.id in held]

    # ---- Helpers ----

    @staticmethod
    def _require_role_access(db: Session, actor: Principal, role: Role, change: bool = False) -> None:
        """Keep role administration inside the actor's school.

        Tenant roles of another school, and changes to global roles, need
        ``schools.view_all``. Reading a global role does not.
        """
        if role.school_id is not None and role.school_id == actor.school_id:
            return
        if role.school_id is None and not change:
            return
        if PermissionStore(db).has_permission(actor.user_id, ALL_SCHOOLS_PERMISSION):
            return
        if role.school_id is None:
            message = f"Changing global roles requires '{ALL_SCHOOLS_PERMISSION}'"
        else:
            message = f"Role {role.id} belongs to another school"
        raise PermissionDenied(message, reason=ROLE_SCOPE)

    @staticmethod
    def _get_role(db: Session, role_id: int) -> Role:
        role = db.get(Role, role_id)
        if role is None:
            raise NotFound(f"Role {role_id} not found")
        return role

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name cannot be empty")
        return name

    @staticmethod
    def _check_level(level: int) -> None:
        if level < 0:
            raise ValidationError("Role level cannot be negative")

    @staticmethod
    def _ensure_unique_name(
        db: Session, name: str, scope: RoleScope, exclude_id: Optional[int] = None,
    ) -> None:
        query = db.query(Role.id).filter(Role.name == name)
        if scope.school_id is None:
            query = query.filter(Role.school_id.is_(None))
        else:
            query = query.filter(Role.school_id == scope.school_id)
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        if query.first() is not None:
            raise Conflict(f"A role named '{name}' already exists in this scope")

    @staticmethod
    def _replace_permissions(
        db: Session, actor: Principal, role: Role, permission_ids: Sequence[int],
    ) -> List[int]:
        """Delete every permission edge of ``role`` and insert the grantable subset."""
        ids = _unique_ids(permission_ids)
        db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(
            synchronize_session=False
        )

        found = db.query(Permission).filter(Permission.id.in_(ids)).all() if ids else []
        missing = sorted(set(ids) - {p.id for p in found})
        if missing:
            raise InternalInconsistency(f"Unknown permission ids: {missing}")

        granted = RoleAdminService.grantable_permission_ids(db, actor, found)
        dropped = sorted(set(ids) - set(granted))
        if dropped:
            logger.info("user %s cannot grant permissions %s, skipped", actor.user_id, dropped)

        db.add_all(RolePermission(role_id=role.id, permission_id=pid) for pid in granted)
        try:
            db.flush()
        except IntegrityError as e:
            raise InternalInconsistency(f"Could not store permissions for role {role.id}: {e.orig}")
        db.expire(role, ["permissions"])
        return granted


role_admin_service = RoleAdminService()
