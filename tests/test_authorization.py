"""Tests for the authorization kernel: gates, three-tier scoping and the hierarchy guard."""

import pytest
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import declarative_base

from election_backend.core.config import settings
from election_backend.core.exceptions import InvalidScope, PermissionDenied
from election_backend.services.authorization import (
    Allow, AllowOwner, AllowSchool, AllowUnscoped, Deny, Principal, ScopePolicy,
    apply_scope, authorize, check_hierarchy, check_role_assignment, list_scope,
    require_hierarchy, require_permission, require_scope, resolve_creation_school, resolve_scope,
)

CAMPAIGNS = ScopePolicy("campaigns", owner_entity="candidate")

ResourceBase = declarative_base()


class Campaign(ResourceBase):
    """Stand-in for a school-owned resource with an owning candidate."""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True)
    title = Column(String(100), nullable=False)
    school_id = Column(Integer, nullable=False)
    candidate_id = Column(Integer, nullable=True)


@pytest.fixture()
def campaigns(engine, db):
    ResourceBase.metadata.create_all(bind=engine)
    rows = [
        Campaign(id=1, title="A", school_id=7, candidate_id=100),
        Campaign(id=2, title="B", school_id=7, candidate_id=101),
        Campaign(id=3, title="C", school_id=8, candidate_id=100),
        Campaign(id=4, title="D", school_id=8, candidate_id=102),
    ]
    db.add_all(rows)
    db.commit()
    yield rows
    ResourceBase.metadata.drop_all(bind=engine)


class TestScopePolicy:

    def test_permission_names(self):
        assert CAMPAIGNS.all_permission("view") == "campaigns.view_all"
        assert CAMPAIGNS.own_school_permission("update") == "campaigns.update_own_school"
        assert CAMPAIGNS.own_entity_permission("delete") == "campaigns.delete_own_candidate"

    def test_no_owner_tier(self):
        assert ScopePolicy("media").own_entity_permission("view") is None


class TestAuthorize:

    def test_allow(self, db, factory):
        _, actor = factory.actor(1, ["roles.create"])
        assert isinstance(authorize(db, actor, "roles.create"), Allow)

    def test_deny_reason(self, db, factory):
        _, actor = factory.actor(1)
        decision = authorize(db, actor, "roles.create")
        assert isinstance(decision, Deny)
        assert decision.reason == "insufficient_permission"

    def test_require_permission_raises(self, db, factory):
        _, actor = factory.actor(1)
        with pytest.raises(PermissionDenied) as excinfo:
            require_permission(db, actor, "roles.create")
        assert excinfo.value.reason == "insufficient_permission"

    def test_unknown_principal_is_denied(self, db):
        assert not authorize(db, Principal(user_id=999), "roles.create").allowed

    def test_revocation_applies_to_next_call(self, db, factory):
        from election_backend.models.role import RolePermission
        user, actor = factory.actor(1, ["roles.create"])
        assert authorize(db, actor, "roles.create").allowed
        db.query(RolePermission).delete()
        db.commit()
        assert not authorize(db, actor, "roles.create").allowed


class TestResolveScope:

    def test_all_tier_wins(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(1, ["campaigns.view_all", "campaigns.view_own_school"], school)
        assert isinstance(resolve_scope(db, actor, CAMPAIGNS, 999), AllowUnscoped)

    def test_own_school_tier(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(1, ["campaigns.view_own_school"], school)
        decision = resolve_scope(db, actor, CAMPAIGNS, school.id)
        assert decision == AllowSchool(school.id)

    def test_own_school_tier_other_school(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(1, ["campaigns.view_own_school"], school)
        assert isinstance(resolve_scope(db, actor, CAMPAIGNS, school.id + 1), Deny)

    def test_falls_through_to_owner_tier(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(
            1, ["campaigns.view_own_school", "campaigns.view_own_candidate"], school,
        )
        decision = resolve_scope(db, actor, CAMPAIGNS, school.id + 1, is_owner=True)
        assert isinstance(decision, AllowOwner)
        assert decision.owner_id == actor.user_id

    def test_owner_tier_requires_ownership(self, db, factory):
        _, actor = factory.actor(1, ["campaigns.view_own_candidate"])
        assert isinstance(resolve_scope(db, actor, CAMPAIGNS, 7, is_owner=False), Deny)

    def test_owner_predicate_is_lazy(self, db, factory):
        _, actor = factory.actor(1, ["campaigns.view_all"])
        calls = []
        resolve_scope(db, actor, CAMPAIGNS, 7, is_owner=lambda: calls.append(1) or True)
        assert calls == []

    def test_principal_without_school(self, db, factory):
        _, actor = factory.actor(1, ["campaigns.view_own_school"])
        assert isinstance(resolve_scope(db, actor, CAMPAIGNS, None), Deny)

    def test_action_selects_permission(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(1, ["campaigns.view_own_school"], school)
        assert resolve_scope(db, actor, CAMPAIGNS, school.id, action="view").allowed
        assert not resolve_scope(db, actor, CAMPAIGNS, school.id, action="update").allowed

    def test_require_scope_raises(self, db, factory):
        _, actor = factory.actor(1)
        with pytest.raises(PermissionDenied):
            require_scope(db, actor, CAMPAIGNS, 7, action="delete")


class TestListScope:

    def _titles(self, db, decision):
        query = apply_scope(db.query(Campaign), decision, Campaign.school_id, Campaign.candidate_id)
        return sorted(c.title for c in query.all())

    def test_all_tier_lists_everything(self, db, factory, campaigns):
        _, actor = factory.actor(1, ["campaigns.view_all"])
        assert self._titles(db, list_scope(db, actor, CAMPAIGNS)) == ["A", "B", "C", "D"]

    def test_own_school_filter(self, db, factory, campaigns):
        _, actor = factory.actor(1, ["campaigns.view_own_school"])
        actor = Principal(user_id=actor.user_id, school_id=7)
        decision = list_scope(db, actor, CAMPAIGNS)
        assert decision == AllowSchool(7)
        assert self._titles(db, decision) == ["A", "B"]

    def test_owner_filter(self, db, factory, campaigns):
        _, actor = factory.actor(1, ["campaigns.view_own_candidate"])
        decision = list_scope(db, actor, CAMPAIGNS, owner_identity=100)
        assert decision == AllowOwner(100)
        assert self._titles(db, decision) == ["A", "C"]

    def test_no_tier_lists_nothing(self, db, factory, campaigns):
        _, actor = factory.actor(1)
        decision = list_scope(db, actor, CAMPAIGNS)
        assert isinstance(decision, Deny)
        assert self._titles(db, decision) == []

    def test_callable_owner_filter(self, db, factory, campaigns):
        _, actor = factory.actor(1, ["campaigns.view_own_candidate"])
        decision = list_scope(db, actor, CAMPAIGNS, owner_identity=[101, 102])
        query = apply_scope(
            db.query(Campaign), decision, Campaign.school_id,
            lambda owners: Campaign.candidate_id.in_(owners),
        )
        assert sorted(c.title for c in query.all()) == ["B", "D"]


class TestCreationScope:

    def test_all_tier_requires_school(self, db, factory):
        _, actor = factory.actor(1, ["campaigns.create_all"])
        with pytest.raises(InvalidScope):
            resolve_creation_school(db, actor, CAMPAIGNS, None)

    def test_all_tier_uses_requested_school(self, db, factory):
        _, actor = factory.actor(1, ["campaigns.create_all"])
        assert resolve_creation_school(db, actor, CAMPAIGNS, 12) == 12

    def test_own_school_ignores_requested_school(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(1, ["campaigns.create_own_school"], school)
        assert resolve_creation_school(db, actor, CAMPAIGNS, 999) == school.id

    def test_no_tier(self, db, factory):
        school = factory.school()
        _, actor = factory.actor(1, [], school)
        with pytest.raises(PermissionDenied):
            resolve_creation_school(db, actor, CAMPAIGNS, school.id)


class TestHierarchy:

    def test_strictly_higher_level_passes(self, db, factory):
        _, actor = factory.actor(5)
        decision = check_hierarchy(db, actor, 4)
        assert decision.allowed
        assert decision.reason == "dominates"

    def test_equal_level_is_denied(self, db, factory):
        _, actor = factory.actor(5)
        decision = check_hierarchy(db, actor, 5)
        assert not decision.allowed
        assert decision.reason == "insufficient_hierarchy"
        assert (decision.actor_level, decision.target_level) == (5, 5)

    def test_equal_level_allowed_when_configured(self, db, factory, monkeypatch):
        monkeypatch.setattr(settings, "HIERARCHY_ALLOW_EQUAL_LEVEL", True)
        _, actor = factory.actor(5)
        assert check_hierarchy(db, actor, 5).allowed
        assert not check_hierarchy(db, actor, 6).allowed

    def test_elevate_privileges_bypass(self, db, factory):
        _, actor = factory.actor(1, [settings.ELEVATE_PRIVILEGES_PERMISSION])
        decision = check_hierarchy(db, actor, 100)
        assert decision.allowed
        assert decision.reason == "elevate_privileges"

    def test_user_without_roles_cannot_act_on_level_zero(self, db, factory):
        actor = factory.principal(factory.user())
        assert not check_hierarchy(db, actor, 0).allowed

    def test_require_hierarchy_raises(self, db, factory):
        _, actor = factory.actor(3)
        with pytest.raises(PermissionDenied) as excinfo:
            require_hierarchy(db, actor, 3)
        assert excinfo.value.reason == "insufficient_hierarchy"


class TestRoleAssignmentGuard:

    def test_all_levels_must_be_dominated(self, db, factory):
        _, actor = factory.actor(5)
        assert check_role_assignment(db, actor, [1, 4], 2).allowed
        decision = check_role_assignment(db, actor, [1, 5], 2)
        assert not decision.allowed
        assert decision.target_level == 5

    def test_target_current_level_is_guarded(self, db, factory):
        _, actor = factory.actor(5)
        decision = check_role_assignment(db, actor, [], 7)
        assert not decision.allowed
        assert decision.target_level == 7

    def test_elevate_bypass(self, db, factory):
        _, actor = factory.actor(1, [settings.ELEVATE_PRIVILEGES_PERMISSION])
        assert check_role_assignment(db, actor, [100], 100).allowed
