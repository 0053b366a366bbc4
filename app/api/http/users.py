from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import uuid

from app.core.auth import get_current_user, require_admin
from app.core.db import get_db
from app.domains.identity.entities import User
from app.domains.identity.schemas import UserResponse, UserPublic, RoleUpdate, BanUpdate
from app.domains.identity.services import IdentityService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserPublic])
async def search_users(
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Find users by username, e.g. to pick invitees"""
    identity_service = IdentityService(db)
    
    offset = (page - 1) * per_page
    users = await identity_service.search_users(search, limit=per_page, offset=offset)
    
    return [UserPublic.model_validate(user) for user in users]


@router.get("/{user_uuid}", response_model=UserPublic)
async def get_user(
    user_uuid: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    identity_service = IdentityService(db)
    
    user = await identity_service.get_user_by_uuid(user_uuid)
    
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    
    return UserPublic.model_validate(user)


@router.patch("/{user_uuid}/role", response_model=UserResponse)
async def update_user_role(
    user_uuid: uuid.UUID,
    role_data: RoleUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Promote or demote a user (admin)"""
    identity_service = IdentityService(db)
    
    try:
        user = await identity_service.set_role(user_uuid, role_data.role)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    
    return UserResponse.model_validate(user)


@router.patch("/{user_uuid}/ban", response_model=UserResponse)
async def update_user_ban(
    user_uuid: uuid.UUID,
    ban_data: BanUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Ban or unban a user (admin)"""
    if user_uuid == admin.uuid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot ban yourself")

    identity_service = IdentityService(db)
    
    user = await identity_service.set_banned(user_uuid, ban_data.banned)
    
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    
    return UserResponse.model_validate(user)
