"""User model."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship

from election_backend.db.base import Base


class User(Base):
    """Platform user; ``school_id`` is NULL for tenant-unscoped accounts."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False, default="")
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    school = relationship("School", lazy="joined")
    # Edges are written through UserRole only.
    roles = relationship(
        "Role", secondary="user_role", lazy="selectin", order_by="Role.level.desc()", viewonly=True,
    )
