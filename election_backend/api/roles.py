"""Roles API router: CRUD over roles and their permission sets."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from election_backend.db.session import get_db
from election_backend.schemas.schemas import (
    RoleCreate, RoleUpdate, RoleOut, RoleWithPermissionsOut, PermissionOut, MessageResponse,
)
from election_backend.services.authorization import Principal
from election_backend.services.role_admin import role_admin_service
from election_backend.core.security import get_principal

router = APIRouter(prefix="/roles", tags=["roles"])
permissions_router = APIRouter(prefix="/permissions", tags=["roles"])


@router.post("/", response_model=RoleWithPermissionsOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Create a role below your own level, in your school or (with rights) any scope."""
    scope = role_admin_service.resolve_role_scope(db, principal, body.is_global, body.school_id)
    return role_admin_service.create_role(
        db, principal, body.name, body.level, scope,
        permission_ids=body.permission_ids, color=body.color,
    )


@router.get("/", response_model=List[RoleWithPermissionsOut])
async def list_roles(
    school_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List roles you could assign: below your level, in the school you manage."""
    return role_admin_service.list_assignable_roles(db, principal, school_id)


@router.get("/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get a single role."""
    return role_admin_service.get_role(db, principal, role_id)


@router.get("/{role_id}/permissions", response_model=List[str])
async def get_role_permissions(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Permission names granted by a role."""
    return role_admin_service.role_permission_names(db, principal, role_id)


@router.put("/{role_id}", response_model=RoleWithPermissionsOut)
async def update_role(
    role_id: int,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Update a role; ``permission_ids`` replaces the whole permission set."""
    kwargs = body.model_dump(exclude_unset=True)
    return role_admin_service.update_role(db, principal, role_id, **kwargs)


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Delete a role and unassign it from every user."""
    role_admin_service.delete_role(db, principal, role_id)
    return MessageResponse(message="Role deleted")


@permissions_router.get("/", response_model=List[PermissionOut])
async def list_permissions(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """The full permission catalog."""
    return role_admin_service.list_permissions(db, principal)
