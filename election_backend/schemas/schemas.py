"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


# ---- Permission ----
class PermissionOut(BaseModel):
    id: int
    name: str
    display_name: str = ""

    class Config:
        from_attributes = True

class PermissionCheckRequest(BaseModel):
    permission_name: str = Field(..., min_length=1)

class PermissionCheckResponse(BaseModel):
    permission_name: str
    has_permission: bool


# ---- Role ----
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    level: int = Field(..., ge=0)
    color: str = ""
    is_global: bool = False
    school_id: Optional[int] = None
    permission_ids: List[int] = []

class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    level: Optional[int] = Field(None, ge=0)
    color: Optional[str] = None
    permission_ids: Optional[List[int]] = None

class RoleOut(BaseModel):
    id: int
    name: str
    level: int
    color: str = ""
    school_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RoleWithPermissionsOut(RoleOut):
    permissions: List[PermissionOut] = []


# ---- User ----
class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    school_id: Optional[int] = None
    roles: List[RoleOut] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    school_id: Optional[int] = None
    role_ids: Optional[List[int]] = None

class UserRolesAssign(BaseModel):
    role_ids: List[int]


# ---- Common ----
class MessageResponse(BaseModel):
    message: str
    success: bool = True
