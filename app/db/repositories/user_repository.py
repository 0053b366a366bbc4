from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
import uuid

from app.db.models.user import User as UserModel
from app.domains.identity.entities import User


class UserRepository:
    """Data access for users"""
    
    def __init__(self, session: AsyncSession):
        self.session = session
    
    async def create(self, user: User) -> User:
        """Insert a new user"""
        db_user = UserModel(
            uuid=user.uuid,
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            role=user.role,
            is_banned=user.is_banned,
            is_active=user.is_active
        )
        
        self.session.add(db_user)
        try:
            await self.session.commit()
            await self.session.refresh(db_user)
            return self._to_domain(db_user)
        except IntegrityError:
            await self.session.rollback()
            raise ValueError("User with this email or username already exists")
    
    async def get_by_uuid(self, user_uuid: uuid.UUID) -> Optional[User]:
        """Fetch a user by UUID"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.uuid == user_uuid)
        )
        db_user = result.scalar_one_or_none()
        return self._to_domain(db_user) if db_user else None
    
    async def get_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        db_user = result.scalar_one_or_none()
        return self._to_domain(db_user) if db_user else None
    
    async def exists(self, user_uuid: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(UserModel.uuid).where(UserModel.uuid == user_uuid)
        )
        return result.scalar_one_or_none() is not None

    async def filter_existing(self, user_uuids: List[uuid.UUID]) -> List[uuid.UUID]:
        """The subset of the given ids that belong to real users"""
        if not user_uuids:
            return []
        result = await self.session.execute(
            select(UserModel.uuid).where(UserModel.uuid.in_(user_uuids))
        )
        return list(result.scalars().all())

    async def update(self, user: User) -> User:
        """Persist role and status changes"""
        stmt = (
            update(UserModel)
            .where(UserModel.uuid == user.uuid)
            .values(
                role=user.role,
                is_banned=user.is_banned,
                is_active=user.is_active,
                updated_at=user.updated_at
            )
        )
        
        await self.session.execute(stmt)
        await self.session.commit()
        
        return await self.get_by_uuid(user.uuid)
    
    async def search(self, query: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[User]:
        """List users, optionally filtered by a username substring"""
        stmt = select(UserModel)
        if query:
            stmt = stmt.where(UserModel.username.ilike(f"%{query}%"))
        result = await self.session.execute(
            stmt.order_by(UserModel.username).offset(offset).limit(limit)
        )
        return [self._to_domain(user) for user in result.scalars().all()]
    
    async def email_exists(self, email: str) -> bool:
        result = await self.session.execute(
            select(UserModel.uuid).where(UserModel.email == email)
        )
        return result.scalar_one_or_none() is not None
    
    async def username_exists(self, username: str) -> bool:
        result = await self.session.execute(
            select(UserModel.uuid).where(UserModel.username == username)
        )
        return result.scalar_one_or_none() is not None
    
    def _to_domain(self, db_user: UserModel) -> User:
        """Convert a row into the domain entity"""
        return User(
            uuid=db_user.uuid,
            email=db_user.email,
            username=db_user.username,
            password_hash=db_user.password_hash,
            role=db_user.role,
            is_banned=db_user.is_banned,
            is_active=db_user.is_active,
            created_at=db_user.created_at,
            updated_at=db_user.updated_at
        )
