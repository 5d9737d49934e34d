"""Seed default global roles and their permission sets."""

from typing import Dict, List
from sqlalchemy.orm import Session

from election_backend.core.config import settings
from election_backend.db.seeds.seed_permissions import PERMISSION_NAMES, tiered
from election_backend.models.role import Permission, Role, RolePermission


def _own_school(names: List[str]) -> List[str]:
    return [n for n in names if not n.endswith("_all")]


DEFAULT_ROLES: List[Dict] = [
    {
        "name": settings.SUPER_ADMIN_ROLE,
        "level": 100,
        "color": "#b71c1c",
        "permissions": list(PERMISSION_NAMES),
    },
    {
        "name": "school_admin",
        "level": 80,
        "color": "#1565c0",
        "permissions": [
            "roles.create", "roles.update", "roles.delete", "roles.view_all",
            "users.assign_roles", "users.register_new_users",
            *_own_school(tiered("users", ["view", "update", "delete"], "profile")),
            *_own_school(tiered("campaigns", ["create"])),
            *_own_school(tiered("campaigns", ["view", "update", "delete"], "candidate")),
            *_own_school(tiered("candidates", ["create"])),
            *_own_school(tiered("candidates", ["view", "update", "delete"], "profile")),
            *_own_school(tiered("campaign_events", ["create", "view", "update", "delete"], "campaign")),
            *_own_school(tiered("campaign_materials", ["create", "view", "update", "delete"], "campaign")),
            *_own_school(tiered("media", ["upload", "view", "delete"])),
            *_own_school(tiered("instagram", ["schedule_post", "view_scheduled_posts",
                                              "cancel_scheduled_post", "configure_account"])),
        ],
    },
    {
        "name": "candidate",
        "level": 20,
        "color": "#2e7d32",
        "permissions": [
            "users.view_own_profile", "users.update_own_profile",
            "campaigns.view_own_school", "campaigns.update_own_candidate",
            "candidates.view_own_school", "candidates.update_own_profile",
            "campaign_events.create_own_campaign", "campaign_events.view_own_school",
            "campaign_events.update_own_campaign", "campaign_events.delete_own_campaign",
            "campaign_materials.create_own_campaign", "campaign_materials.view_own_school",
            "campaign_materials.update_own_campaign", "campaign_materials.delete_own_campaign",
            "media.view_own_school",
        ],
    },
    {
        "name": "student",
        "level": 10,
        "color": "#757575",
        "permissions": [
            "users.view_own_profile",
            "campaigns.view_own_school", "candidates.view_own_school",
            "campaign_events.view_own_school", "campaign_materials.view_own_school",
            "users.can_be_candidate",
        ],
    },
]


def seed_roles(db: Session) -> None:
    """Insert default global roles if they don't already exist."""
    permission_ids = {name: pid for pid, name in db.query(Permission.id, Permission.name).all()}

    for role_data in DEFAULT_ROLES:
        existing = (
            db.query(Role)
            .filter(Role.name == role_data["name"], Role.school_id.is_(None))
            .first()
        )
        if existing:
            continue
        role = Role(name=role_data["name"], level=role_data["level"], color=role_data["color"])
        db.add(role)
        db.flush()
        for name in dict.fromkeys(role_data["permissions"]):
            if name not in permission_ids:
                print(f"⚠️  Permission '{name}' missing from catalog, run seed_permissions first.")
                continue
            db.add(RolePermission(role_id=role.id, permission_id=permission_ids[name]))

    db.commit()
    print(f"✅ Seeded {len(DEFAULT_ROLES)} roles")
