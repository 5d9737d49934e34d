"""Authorization kernel: permission gates, tenant scoping and the privilege hierarchy.

Resource controllers compose three building blocks from this module:

* ``authorize`` / ``require_permission``: the binary gate on one permission.
* ``resolve_scope`` / ``list_scope`` / ``resolve_creation_school``: the
  three-tier ``_all`` / ``_own_school`` / ``_own_<entity>`` pattern for a
  single resource, a listing, and a creation respectively.
* ``check_hierarchy`` / ``check_role_assignment``: the strict-dominance rule
  guarding role and user administration against privilege escalation.

Every function takes an explicit ``Principal`` and a session and reads the
current permission store state; nothing is cached between calls.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from election_backend.core.config import settings
from election_backend.core.exceptions import InvalidScope, PermissionDenied
from election_backend.services.permission_store import PermissionStore

logger = logging.getLogger("election_backend")

INSUFFICIENT_PERMISSION = "insufficient_permission"
INSUFFICIENT_HIERARCHY = "insufficient_hierarchy"
TARGET_LEVEL_UNAVAILABLE = "target_level_unavailable"


@dataclass(frozen=True)
class Principal:
    """The authenticated actor of one request."""

    user_id: int
    school_id: Optional[int] = None


# ---- Decisions ----

@dataclass(frozen=True)
class Allow:
    allowed = True


@dataclass(frozen=True)
class Deny:
    reason: str = INSUFFICIENT_PERMISSION
    allowed = False


@dataclass(frozen=True)
class AllowUnscoped:
    """Tier 1: the ``_all`` permission, no data filter."""
    allowed = True


@dataclass(frozen=True)
class AllowSchool:
    """Tier 2: access limited to one school's data."""
    school_id: int
    allowed = True


@dataclass(frozen=True)
class AllowOwner:
    """Tier 3: access limited to data the principal owns."""
    owner_id: Any = None
    allowed = True


ScopeDecision = Union[Deny, AllowUnscoped, AllowSchool, AllowOwner]


@dataclass(frozen=True)
class HierarchyDecision:
    allowed: bool
    reason: str
    actor_level: int
    target_level: int


@dataclass(frozen=True)
class ScopePolicy:
    """Names the tier permissions of one resource domain.

    ``ScopePolicy("campaigns", "candidate")`` yields, for action ``view``,
    ``campaigns.view_all``, ``campaigns.view_own_school`` and
    ``campaigns.view_own_candidate``.
    """

    domain: str
    owner_entity: Optional[str] = None

    def all_permission(self, action: str = "view") -> str:
        return f"{self.domain}.{action}_all"

    def own_school_permission(self, action: str = "view") -> str:
        return f"{self.domain}.{action}_own_school"

    def own_entity_permission(self, action: str = "view") -> Optional[str]:
        if self.owner_entity is None:
            return None
        return f"{self.domain}.{action}_own_{self.owner_entity}"


OwnershipPredicate = Union[bool, Callable[[], bool]]


# ---- Permission gate ----

def authorize(db: Session, principal: Principal, permission_name: str) -> Union[Allow, Deny]:
    """Allow iff the principal holds ``permission_name``; no tenant scoping."""
    if PermissionStore(db).has_permission(principal.user_id, permission_name):
        return Allow()
    logger.debug("user %s denied %s", principal.user_id, permission_name)
    return Deny(INSUFFICIENT_PERMISSION)


def require_permission(
    db: Session, principal: Principal, permission_name: str, message: Optional[str] = None,
) -> None:
    """Raise ``PermissionDenied`` unless ``authorize`` allows."""
    decision = authorize(db, principal, permission_name)
    if not decision.allowed:
        raise PermissionDenied(
            message or f"Missing permission '{permission_name}'", reason=decision.reason,
        )


# ---- Tenant scoping ----

def resolve_scope(
    db: Session,
    principal: Principal,
    policy: ScopePolicy,
    resource_school_id: Optional[int],
    is_owner: OwnershipPredicate = False,
    action: str = "view",
) -> ScopeDecision:
    """Decide access to one resource owned by ``resource_school_id``.

    Tiers are tried in order and the first satisfied one wins. Holding the
    ``_own_school`` permission for a resource of another school does not stop
    evaluation: the ownership tier is still checked on its own. ``is_owner``
    may be a callable; it is only invoked when the ownership tier is reached.
    """
    store = PermissionStore(db)
    user_id = principal.user_id

    if store.has_permission(user_id, policy.all_permission(action)):
        return AllowUnscoped()

    if (
        principal.school_id is not None
        and resource_school_id is not None
        and resource_school_id == principal.school_id
        and store.has_permission(user_id, policy.own_school_permission(action))
    ):
        return AllowSchool(principal.school_id)

    own_entity = policy.own_entity_permission(action)
    if own_entity is not None and store.has_permission(user_id, own_entity):
        owner = is_owner() if callable(is_owner) else is_owner
        if owner:
            return AllowOwner(user_id)

    logger.debug(
        "user %s denied %s.%s on school %s", user_id, policy.domain, action, resource_school_id,
    )
    return Deny(INSUFFICIENT_PERMISSION)


def require_scope(
    db: Session,
    principal: Principal,
    policy: ScopePolicy,
    resource_school_id: Optional[int],
    is_owner: OwnershipPredicate = False,
    action: str = "view",
) -> ScopeDecision:
    """``resolve_scope`` for single-resource and mutating endpoints: Deny raises."""
    decision = resolve_scope(db, principal, policy, resource_school_id, is_owner, action)
    if not decision.allowed:
        raise PermissionDenied(
            f"Not allowed to {action} this {policy.domain} resource", reason=decision.reason,
        )
    return decision


def list_scope(
    db: Session,
    principal: Principal,
    policy: ScopePolicy,
    owner_identity: Any = None,
    action: str = "view",
) -> ScopeDecision:
    """Pick the filter a listing endpoint must apply.

    The first tier whose permission is held decides. A Deny here means an
    empty listing, not an error. ``owner_identity`` defaults to the
    principal's user id.
    """
    store = PermissionStore(db)
    user_id = principal.user_id

    if store.has_permission(user_id, policy.all_permission(action)):
        return AllowUnscoped()
    if principal.school_id is not None and store.has_permission(
        user_id, policy.own_school_permission(action)
    ):
        return AllowSchool(principal.school_id)
    own_entity = policy.own_entity_permission(action)
    if own_entity is not None and store.has_permission(user_id, own_entity):
        return AllowOwner(owner_identity if owner_identity is not None else user_id)
    return Deny(INSUFFICIENT_PERMISSION)


def apply_scope(
    query: Query,
    decision: ScopeDecision,
    school_column: Any,
    owner_column: Any = None,
) -> Query:
    """Narrow ``query`` according to a ``list_scope`` decision.

    ``owner_column`` is either a column compared to the owner identity or a
    callable ``owner_id -> SQL expression`` for ownership that is not a plain
    column (e.g. membership through a link table).
    """
    if isinstance(decision, AllowUnscoped):
        return query
    if isinstance(decision, AllowSchool):
        return query.filter(school_column == decision.school_id)
    if isinstance(decision, AllowOwner) and owner_column is not None:
        if callable(owner_column) and not hasattr(owner_column, "__clause_element__"):
            return query.filter(owner_column(decision.owner_id))
        return query.filter(owner_column == decision.owner_id)
    return query.filter(false())


def resolve_creation_school(
    db: Session,
    principal: Principal,
    policy: ScopePolicy,
    requested_school_id: Optional[int],
    action: str = "create",
) -> int:
    """School to stamp on a new resource.

    Raises:
        InvalidScope: The actor holds the ``_all`` permission but gave no school.
        PermissionDenied: Neither the ``_all`` nor a usable ``_own_school`` tier.
    """
    store = PermissionStore(db)
    if store.has_permission(principal.user_id, policy.all_permission(action)):
        if requested_school_id is None:
            raise InvalidScope(f"school_id is required to {action} {policy.domain} for any school")
        return requested_school_id
    if principal.school_id is not None and store.has_permission(
        principal.user_id, policy.own_school_permission(action)
    ):
        return principal.school_id
    raise PermissionDenied(f"Not allowed to {action} {policy.domain}")


# ---- Privilege hierarchy ----

def _dominates(actor_level: int, target_level: int) -> bool:
    if settings.HIERARCHY_ALLOW_EQUAL_LEVEL:
        return actor_level >= target_level
    return actor_level > target_level


def check_hierarchy(db: Session, actor: Principal, target_level: int) -> HierarchyDecision:
    """Allow iff the actor strictly outranks ``target_level`` or may elevate privileges."""
    store = PermissionStore(db)
    actor_level = store.max_role_level(actor.user_id)
    if store.has_permission(actor.user_id, settings.ELEVATE_PRIVILEGES_PERMISSION):
        return HierarchyDecision(True, "elevate_privileges", actor_level, target_level)
    if _dominates(actor_level, target_level):
        return HierarchyDecision(True, "dominates", actor_level, target_level)
    logger.info(
        "hierarchy guard denied user %s (level %s) against level %s",
        actor.user_id, actor_level, target_level,
    )
    return HierarchyDecision(False, INSUFFICIENT_HIERARCHY, actor_level, target_level)


def require_hierarchy(
    db: Session, actor: Principal, target_level: int, message: Optional[str] = None,
) -> HierarchyDecision:
    decision = check_hierarchy(db, actor, target_level)
    if not decision.allowed:
        raise PermissionDenied(
            message or "Cannot act on a privilege level equal to or above your own",
            reason=decision.reason,
        )
    return decision


def require_target_level(db: Session, target_user_id: int) -> int:
    """Current max level of the user being acted upon.

    Raises:
        PermissionDenied: The level could not be read; the action is denied
            rather than compared against a floor level.
    """
    level = PermissionStore(db).target_role_level(target_user_id)
    if level is None:
        raise PermissionDenied(
            "Could not verify the privilege level of the target user",
            reason=TARGET_LEVEL_UNAVAILABLE,
        )
    return level


def check_role_assignment(
    db: Session,
    actor: Principal,
    role_levels: Iterable[int],
    target_current_level: int,
) -> HierarchyDecision:
    """Guard a bulk role replacement on a target user.

    Every proposed role level and the target's current maximum level must be
    dominated by the actor. The first failing level is reported.
    """
    store = PermissionStore(db)
    actor_level = store.max_role_level(actor.user_id)
    if store.has_permission(actor.user_id, settings.ELEVATE_PRIVILEGES_PERMISSION):
        return HierarchyDecision(True, "elevate_privileges", actor_level, target_current_level)

    for level in [target_current_level, *role_levels]:
        if not _dominates(actor_level, level):
            logger.info(
                "role assignment by user %s (level %s) blocked at level %s",
                actor.user_id, actor_level, level,
            )
            return HierarchyDecision(False, INSUFFICIENT_HIERARCHY, actor_level, level)
    return HierarchyDecision(True, "dominates", actor_level, target_current_level)
