from pydantic import BaseModel, EmailStr, Field, field_validator, ConfigDict
from typing import Literal
from datetime import datetime
import uuid


class UserBase(BaseModel):
    """Shared user fields"""
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100)
    
    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Username must contain only alphanumeric characters, underscores, and hyphens')
        return v


class UserCreate(UserBase):
    """Registration payload"""
    password: str = Field(..., min_length=8, max_length=128)
    
    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not any(c.isupper() for c in v):
            raise ValueError('Password must contain at least one uppercase letter')
        if not any(c.islower() for c in v):
            raise ValueError('Password must contain at least one lowercase letter')
        if not any(c.isdigit() for c in v):
            raise ValueError('Password must contain at least one digit')
        return v


class UserLogin(BaseModel):
    """Login payload"""
    email: EmailStr
    password: str


class UserResponse(UserBase):
    """Full user representation, returned to the user themselves and to admins"""
    uuid: uuid.UUID
    role: str
    is_banned: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class UserPublic(BaseModel):
    """What other users may see, e.g. when picking invitees"""
    uuid: uuid.UUID
    username: str

    model_config = ConfigDict(from_attributes=True)


class RoleUpdate(BaseModel):
    role: Literal["user", "admin"]


class BanUpdate(BaseModel):
    banned: bool


class Token(BaseModel):
    """JWT access token"""
    access_token: str
    token_type: str = "bearer"
