"""Seed a demo school with an administrator, a candidate and a student."""

from sqlalchemy.orm import Session
from election_backend.models.role import Role, UserRole
from election_backend.models.school import School
from election_backend.models.user import User

DEMO_SCHOOL = "Demo High School"
DEMO_USERS = [
    ("admin@demo-school.local", "Demo Administrator", "school_admin"),
    ("candidate@demo-school.local", "Demo Candidate", "candidate"),
    ("student@demo-school.local", "Demo Student", "student"),
]


def seed_sample_data(db: Session) -> None:
    """Insert the demo school and its users if they don't already exist."""
    school = db.query(School).filter(School.name == DEMO_SCHOOL).first()
    if not school:
        school = School(name=DEMO_SCHOOL)
        db.add(school)
        db.flush()

    roles = {r.name: r for r in db.query(Role).filter(Role.school_id.is_(None)).all()}
    for email, full_name, role_name in DEMO_USERS:
        if db.query(User).filter(User.email == email).first():
            continue
        role = roles.get(role_name)
        if role is None:
            print(f"⚠️  Role '{role_name}' not found. Run seed_roles first.")
            continue
        user = User(email=email, full_name=full_name, school_id=school.id)
        db.add(user)
        db.flush()
        db.add(UserRole(user_id=user.id, role_id=role.id))

    db.commit()
    print(f"✅ Seeded demo school '{DEMO_SCHOOL}' (id {school.id})")
