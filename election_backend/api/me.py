"""Me API router: the caller's own roles and permissions."""

from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from election_backend.db.session import get_db
from election_backend.schemas.schemas import (
    PermissionOut, PermissionCheckRequest, PermissionCheckResponse, RoleOut,
)
from election_backend.services.authorization import Principal
from election_backend.services.permission_store import PermissionStore
from election_backend.core.security import get_principal

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/permissions", response_model=List[PermissionOut])
async def my_permissions(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Effective permission set: the union over all roles you hold."""
    return PermissionStore(db).effective_permissions(principal.user_id)


@router.get("/roles", response_model=List[RoleOut])
async def my_roles(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Roles you hold, highest level first."""
    return PermissionStore(db).roles_of(principal.user_id)


@router.post("/permission-check", response_model=PermissionCheckResponse)
async def check_permission(
    body: PermissionCheckRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Whether you hold a given permission."""
    return PermissionCheckResponse(
        permission_name=body.permission_name,
        has_permission=PermissionStore(db).has_permission(principal.user_id, body.permission_name),
    )
