"""Seed the super-admin user from env vars."""

from sqlalchemy.orm import Session
from election_backend.models.user import User
from election_backend.models.role import Role, UserRole
from election_backend.core.config import settings


def seed_super_admin(db: Session) -> None:
    """Create the super-admin user if needed and make sure it holds the super-admin role."""
    super_admin_role = (
        db.query(Role)
        .filter(Role.name == settings.SUPER_ADMIN_ROLE, Role.school_id.is_(None))
        .first()
    )
    if not super_admin_role:
        print(f"⚠️  {settings.SUPER_ADMIN_ROLE} role not found. Run seed_roles first.")
        return

    admin = db.query(User).filter(User.email == settings.SUPER_ADMIN_EMAIL).first()
    if not admin:
        admin = User(email=settings.SUPER_ADMIN_EMAIL, full_name=settings.SUPER_ADMIN_NAME)
        db.add(admin)
        db.flush()
        print(f"✅ Created super admin: {settings.SUPER_ADMIN_EMAIL}")

    held = db.query(UserRole).filter(
        UserRole.user_id == admin.id, UserRole.role_id == super_admin_role.id,
    ).first()
    if not held:
        db.add(UserRole(user_id=admin.id, role_id=super_admin_role.id))
    db.commit()
