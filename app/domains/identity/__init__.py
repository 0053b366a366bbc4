# IdentityService lives in app.domains.identity.services; the user repository
# imports entities from this package, so it must stay free of repository imports.
from app.domains.identity.entities import User, ROLE_USER, ROLE_ADMIN
from app.domains.identity.schemas import (
    UserBase, UserCreate, UserLogin, UserResponse, UserPublic,
    RoleUpdate, BanUpdate, Token
)

__all__ = [
    "User", "ROLE_USER", "ROLE_ADMIN",
    "UserBase", "UserCreate", "UserLogin", "UserResponse", "UserPublic",
    "RoleUpdate", "BanUpdate", "Token",
]
