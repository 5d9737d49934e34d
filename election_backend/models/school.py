"""School (tenant) model."""

from sqlalchemy import Column, Integer, String, DateTime, func

from election_backend.db.base import Base


class School(Base):
    """Multi-tenancy partition; most resources belong to exactly one school."""
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
