"""Role, permission and membership models for RBAC."""

from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, func,
)
from sqlalchemy.orm import relationship

from election_backend.db.base import Base


@dataclass(frozen=True)
class GlobalScope:
    """A role visible and assignable in every school."""

    @property
    def school_id(self) -> None:
        return None


@dataclass(frozen=True)
class TenantScope:
    """A role that belongs to exactly one school."""

    school_id: int


RoleScope = Union[GlobalScope, TenantScope]


def scope_from_school_id(school_id: Optional[int]) -> RoleScope:
    """Map the nullable ``roles.school_id`` column onto a tagged scope."""
    if school_id is None:
        return GlobalScope()
    return TenantScope(school_id)


class Role(Base):
    """Named bundle of permissions with a hierarchical privilege level."""
    __tablename__ = "roles"
    __table_args__ = (
        # NULL school_id rows are distinct for the database; the service
        # enforces uniqueness among global roles.
        UniqueConstraint("name", "school_id", name="uq_roles_name_school"),
        CheckConstraint("level >= 0", name="ck_roles_level_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    level = Column(Integer, nullable=False, default=0)
    color = Column(String(20), nullable=False, default="")
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    permissions = relationship("Permission", secondary="role_permissions", lazy="selectin", viewonly=True)

    @property
    def scope(self) -> RoleScope:
        return scope_from_school_id(self.school_id)


class Permission(Base):
    """Catalog entry for a named capability, e.g. ``campaigns.view_all``."""
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False, default="")


class RolePermission(Base):
    """Edge between a role and one of its permissions."""
    __tablename__ = "role_permissions"

    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    permission_id = Column(Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True)


class UserRole(Base):
    """Edge between a user and a role they hold."""
    __tablename__ = "user_role"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
