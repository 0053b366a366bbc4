import logging
import uuid
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import create_access_token, verify_token
from app.db.repositories.user_repository import UserRepository
from app.domains.identity.entities import User
from app.domains.identity.schemas import UserCreate, UserLogin

logger = logging.getLogger(__name__)


class IdentityService:
    """Registration, login and account administration"""
    
    def __init__(self, session: AsyncSession):
        self.session = session
        self.user_repository = UserRepository(session)
    
    async def register_user(self, user_data: UserCreate) -> User:
        """Register a new user"""
        if await self.user_repository.email_exists(user_data.email):
            raise ValueError("Email already registered")
        
        if await self.user_repository.username_exists(user_data.username):
            raise ValueError("Username already taken")
        
        user = User.create_user(
            email=user_data.email,
            username=user_data.username,
            password=user_data.password
        )
        
        created = await self.user_repository.create(user)
        logger.info(f"Registered user {created.uuid} ({created.username})")
        return created
    
    async def authenticate_user(self, login_data: UserLogin) -> Optional[User]:
        """Check credentials; banned and inactive accounts cannot sign in"""
        user = await self.user_repository.get_by_email(login_data.email)
        
        if not user or not user.is_active or user.is_banned:
            return None
        
        if not user.authenticate(login_data.password):
            return None
        
        return user
    
    async def login_user(self, login_data: UserLogin) -> Optional[str]:
        """Sign in and issue a JWT"""
        user = await self.authenticate_user(login_data)
        
        if not user:
            logger.warning(f"Failed login for {login_data.email}")
            return None
        
        token_data = {
            "sub": str(user.uuid),
            "username": user.username,
            "role": user.role
        }
        
        return create_access_token(data=token_data)
    
    async def get_user_by_uuid(self, user_uuid: uuid.UUID) -> Optional[User]:
        return await self.user_repository.get_by_uuid(user_uuid)
    
    async def get_current_user_from_token(self, token: str) -> Optional[User]:
        """Resolve the user a JWT was issued to"""
        payload = verify_token(token)
        if not payload or not payload.get("sub"):
            return None

        try:
            user_uuid = uuid.UUID(payload["sub"])
        except ValueError:
            return None

        user = await self.user_repository.get_by_uuid(user_uuid)
        if user is None or not user.is_active:
            return None
        return user
    
    async def search_users(self, query: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[User]:
        return await self.user_repository.search(query, limit, offset)

    async def set_role(self, user_uuid: uuid.UUID, role: str) -> Optional[User]:
        """Change a user's role"""
        user = await self.user_repository.get_by_uuid(user_uuid)
        if not user:
            return None
        user.set_role(role)
        logger.info(f"User {user_uuid} role set to {role}")
        return await self.user_repository.update(user)

    async def set_banned(self, user_uuid: uuid.UUID, banned: bool) -> Optional[User]:
        """Ban or unban a user"""
        user = await self.user_repository.get_by_uuid(user_uuid)
        if not user:
            return None
        if banned:
            user.ban()
        else:
            user.unban()
        logger.info(f"User {user_uuid} banned={banned}")
        return await self.user_repository.update(user)
