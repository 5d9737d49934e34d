"""User administration: list, update and delete users under tenant and hierarchy rules."""

import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from election_backend.core.exceptions import NotFound, PermissionDenied, ValidationError
from election_backend.db.session import atomic
from election_backend.models.role import UserRole
from election_backend.models.school import School
from election_backend.models.user import User
from election_backend.services.authorization import (
    AllowUnscoped, Principal, ScopePolicy,
    apply_scope, list_scope, require_hierarchy, require_permission, require_scope,
    require_target_level,
)
from election_backend.services.role_admin import RoleAdminService

logger = logging.getLogger("election_backend")

# users.<action>_all / users.<action>_own_school / users.<action>_own_profile
USERS_POLICY = ScopePolicy("users", owner_entity="profile")


class UserAdminService:
    """Applies the users.* tiers and the hierarchy guard to user management."""

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def list_users(db: Session, actor: Principal, school_id: Optional[int] = None) -> List[User]:
        """Users visible to the actor; empty when no users.view_* tier is held.

        ``school_id`` narrows the listing only for actors with ``users.view_all``.
        """
        decision = list_scope(db, actor, USERS_POLICY)
        query = db.query(User)
        if isinstance(decision, AllowUnscoped) and school_id is not None:
            query = query.filter(User.school_id == school_id)
        query = apply_scope(query, decision, User.school_id, User.id)
        return query.order_by(User.id.asc()).all()

    @staticmethod
    def update_user(
        db: Session,
        actor: Principal,
        user_id: int,
        full_name: Optional[str] = None,
        school_id: Optional[int] = None,
        role_ids: Optional[Sequence[int]] = None,
    ) -> User:
        """Update a user's name, school and/or role set in one transaction.

        Moving a user to another school needs ``users.update_all``. Changing
        anyone but yourself needs a strictly higher level than theirs.
        """
        if full_name is None and school_id is None and role_ids is None:
            raise ValidationError("No fields provided for update")

        with atomic(db):
            user = UserAdminService.get_user(db, user_id)
            is_self = user.id == actor.user_id
            require_scope(db, actor, USERS_POLICY, user.school_id, is_owner=is_self, action="update")
            if not is_self:
                require_hierarchy(
                    db, actor, require_target_level(db, user.id),
                    "Cannot modify a user with privileges equal to or above your own",
                )

            if full_name is not None:
                full_name = full_name.strip()
                if not full_name:
                    raise ValidationError("Name cannot be empty")
                user.full_name = full_name

            if school_id is not None and school_id != user.school_id:
                require_permission(
                    db, actor, USERS_POLICY.all_permission("update"),
                    "Only administrators of all schools can move users between schools",
                )
                if db.get(School, school_id) is None:
                    raise NotFound(f"School {school_id} not found")
                user.school_id = school_id

            db.flush()
            if role_ids is not None:
                RoleAdminService.replace_user_roles(db, actor, user, role_ids)

        logger.info("user %s updated user %s", actor.user_id, user_id)
        db.refresh(user)
        return user

    @staticmethod
    def delete_user(db: Session, actor: Principal, user_id: int) -> None:
        """Delete a user and their role assignments."""
        if user_id == actor.user_id:
            raise PermissionDenied("You cannot delete your own account", reason="self_delete")

        with atomic(db):
            user = UserAdminService.get_user(db, user_id)
            require_scope(db, actor, USERS_POLICY, user.school_id, action="delete")
            require_hierarchy(
                db, actor, require_target_level(db, user.id),
                "Cannot delete a user with privileges equal to or above your own",
            )
            db.query(UserRole).filter(UserRole.user_id == user.id).delete(synchronize_session=False)
            db.delete(user)

        logger.info("user %s deleted user %s", actor.user_id, user_id)


user_admin_service = UserAdminService()
