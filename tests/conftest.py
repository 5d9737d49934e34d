"""Shared pytest fixtures: in-memory database, graph factories and an API client."""

from typing import Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import election_backend.models  # noqa: F401  registers the mappers
from election_backend.core.security import create_access_token
from election_backend.db.base import Base
from election_backend.db.session import get_db
from election_backend.main import app
from election_backend.models.role import Permission, Role, RolePermission, UserRole
from election_backend.models.school import School
from election_backend.models.user import User
from election_backend.services.authorization import Principal
from election_backend.services.permission_store import PermissionStore


@pytest.fixture()
def engine():
    """One SQLite in-memory database per test, shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


class GraphFactory:
    """Builds schools, users, roles and permissions directly in the database."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def school(self, name: Optional[str] = None) -> School:
        school = School(name=name or f"School {self._next()}")
        self.db.add(school)
        self.db.commit()
        return school

    def permission(self, name: str) -> Permission:
        existing = self.db.query(Permission).filter(Permission.name == name).first()
        if existing:
            return existing
        permission = Permission(name=name, display_name=name)
        self.db.add(permission)
        self.db.commit()
        return permission

    def role(
        self,
        name: Optional[str] = None,
        level: int = 0,
        permissions: Iterable[str] = (),
        school: Optional[School] = None,
    ) -> Role:
        role = Role(
            name=name or f"role_{self._next()}",
            level=level,
            school_id=school.id if school else None,
        )
        self.db.add(role)
        self.db.flush()
        for perm_name in permissions:
            self.db.add(RolePermission(role_id=role.id, permission_id=self.permission(perm_name).id))
        self.db.commit()
        return role

    def user(
        self,
        roles: Iterable[Role] = (),
        school: Optional[School] = None,
        email: Optional[str] = None,
    ) -> User:
        user = User(
            email=email or f"user{self._next()}@school.local",
            full_name="Test User",
            school_id=school.id if school else None,
        )
        self.db.add(user)
        self.db.flush()
        for role in roles:
            self.db.add(UserRole(user_id=user.id, role_id=role.id))
        self.db.commit()
        return user

    def actor(self, level: int, permissions: Iterable[str] = (), school: Optional[School] = None):
        """A user holding one fresh role; returns ``(user, principal)``."""
        role = self.role(level=level, permissions=permissions)
        user = self.user(roles=[role], school=school)
        return user, self.principal(user)

    @staticmethod
    def principal(user: User) -> Principal:
        return Principal(user_id=user.id, school_id=user.school_id)


@pytest.fixture()
def factory(db) -> GraphFactory:
    return GraphFactory(db)


@pytest.fixture()
def client(db):
    """API client whose requests share the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    """Bearer headers for a user."""

    def make(user: User) -> dict:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest.fixture()
def fail_level_reads(monkeypatch):
    """Make the max-level read fail for the given user ids only."""

    def install(*user_ids):
        original = PermissionStore._query_max_level

        def query_max_level(store, user_id):
            if user_id in user_ids:
                raise OperationalError("SELECT max(level)", {}, Exception("connection lost"))
            return original(store, user_id)

        monkeypatch.setattr(PermissionStore, "_query_max_level", query_max_level)

    return install
