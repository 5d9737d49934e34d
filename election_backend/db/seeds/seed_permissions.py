"""Seed the permission catalog.

Permissions are created here, by migration/seed, never through the API.
"""

from typing import Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session
from election_backend.models.role import Permission


def tiered(domain: str, actions: Iterable[str], owner_entity: Optional[str] = None) -> List[str]:
    """``<domain>.<action>_all`` / ``_own_school`` (/ ``_own_<entity>``) for each action."""
    names = []
    for action in actions:
        names.append(f"{domain}.{action}_all")
        names.append(f"{domain}.{action}_own_school")
        if owner_entity:
            names.append(f"{domain}.{action}_own_{owner_entity}")
    return names


PERMISSION_NAMES: List[str] = [
    # Administration
    "roles.create", "roles.update", "roles.delete", "roles.view_all",
    "users.assign_roles", "users.elevate_privileges",
    "users.register_new_users", "users.can_be_candidate",
    "schools.view_all", "schools.create", "schools.update", "schools.delete",
    *tiered("users", ["view", "update", "delete"], "profile"),
    # Election domains
    *tiered("campaigns", ["create"]),
    *tiered("campaigns", ["view", "update", "delete"], "candidate"),
    *tiered("candidates", ["create"]),
    *tiered("candidates", ["view", "update", "delete"], "profile"),
    *tiered("campaign_events", ["create", "view", "update", "delete"], "campaign"),
    *tiered("campaign_materials", ["create", "view", "update", "delete"], "campaign"),
    *tiered("programs", ["create", "view", "update", "delete"], "campaign"),
    *tiered("media", ["upload", "view", "delete"]),
    *tiered("graphics", ["view", "approve"]),
    *tiered("instagram", ["schedule_post", "view_scheduled_posts", "cancel_scheduled_post",
                          "configure_account"]),
]


def display_name(name: str) -> str:
    """``campaign_events.view_own_school`` -> ``Campaign events: view own school``."""
    domain, _, action = name.partition(".")
    return f"{domain.replace('_', ' ').capitalize()}: {action.replace('_', ' ').replace('.', ' ')}"


def permission_catalog() -> List[Tuple[str, str]]:
    return [(name, display_name(name)) for name in dict.fromkeys(PERMISSION_NAMES)]


def seed_permissions(db: Session) -> None:
    """Insert catalog permissions that don't already exist."""
    existing = {name for (name,) in db.query(Permission.name).all()}
    added = 0
    for name, label in permission_catalog():
        if name not in existing:
            db.add(Permission(name=name, display_name=label))
            added += 1
    db.commit()
    print(f"✅ Seeded {added} permissions ({len(existing)} already present)")
