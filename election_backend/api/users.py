"""Users API router: tenant-scoped user listing and administration."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from election_backend.db.session import get_db
from election_backend.schemas.schemas import (
    UserOut, UserUpdateRequest, UserRolesAssign, RoleOut, MessageResponse,
)
from election_backend.services.authorization import Principal
from election_backend.services.role_admin import role_admin_service
from election_backend.services.user_admin import user_admin_service
from election_backend.core.security import get_principal

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/", response_model=List[UserOut])
async def list_users(
    school_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List the users you may see; ``school_id`` applies to cross-school viewers."""
    return user_admin_service.list_users(db, principal, school_id)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: int,
    body: UserUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Update a user's name, school or roles."""
    return user_admin_service.update_user(
        db, principal, user_id,
        full_name=body.full_name, school_id=body.school_id, role_ids=body.role_ids,
    )


@router.put("/{user_id}/roles", response_model=List[RoleOut])
async def assign_roles(
    user_id: int,
    body: UserRolesAssign,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Replace a user's roles. An empty list removes them all."""
    return role_admin_service.assign_roles(db, principal, user_id, body.role_ids)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Delete a user."""
    user_admin_service.delete_user(db, principal, user_id)
    return MessageResponse(message="User deleted")
