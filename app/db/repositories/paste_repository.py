from datetime import datetime
from typing import Optional, List, Iterable, Dict, Any
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, insert, func, and_, or_

from app.db.models.paste import (
    Paste as PasteModel,
    PasteInvite as PasteInviteModel,
    PasteVersion as PasteVersionModel,
    PasteView as PasteViewModel,
)
from app.db.models.user import User as UserModel
from app.domains.pastes.entities import Paste, InvitedUser, VersionMeta, ViewerInfo
from app.utils.time import utc_now


class PasteRepository:
    """Data access for the pastes table. Never commits; callers own the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, paste: Paste) -> Paste:
        """Insert a new paste row"""
        db_paste = PasteModel(
            id=paste.id,
            content=paste.content,
            owner_id=paste.owner_id,
            visibility=paste.visibility,
            custom_slug=paste.custom_slug,
            language=paste.language,
            title=paste.title,
            password_hash=paste.password_hash,
            expires_at=paste.expires_at,
            burn_after_reading=paste.burn_after_reading,
            current_version=1,
            views=0,
            unique_views=0,
            versioning_enabled=paste.versioning_enabled,
            version_history_visible=paste.version_history_visible,
            created_at=paste.created_at,
            updated_at=paste.updated_at,
        )
        self.session.add(db_paste)
        await self.session.flush()
        return self._to_domain(db_paste)

    def _select_with_owner(self):
        # counters are bumped with bulk UPDATEs, so never trust the identity map
        return (
            select(PasteModel, UserModel.username)
            .outerjoin(UserModel, PasteModel.owner_id == UserModel.uuid)
            .execution_options(populate_existing=True)
        )

    async def _fetch_one(self, stmt) -> Optional[Paste]:
        result = await self.session.execute(stmt.limit(1))
        row = result.first()
        if row is None:
            return None
        db_paste, username = row
        return self._to_domain(db_paste, owner_username=username)

    async def get_by_id(self, paste_id: str) -> Optional[Paste]:
        """Fetch a paste by its generated id"""
        return await self._fetch_one(
            self._select_with_owner().where(PasteModel.id == paste_id)
        )

    async def find_by_slug(self, slug: str) -> Optional[Paste]:
        """Fetch a paste by id or custom slug, with the owner's username"""
        return await self._fetch_one(
            self._select_with_owner().where(or_(PasteModel.id == slug, PasteModel.custom_slug == slug))
        )

    async def slug_exists(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        """Whether any paste uses the value as its id or custom slug"""
        stmt = select(PasteModel.id).where(
            or_(PasteModel.id == slug, PasteModel.custom_slug == slug)
        )
        if exclude_id is not None:
            stmt = stmt.where(PasteModel.id != exclude_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def get_password_hash(self, paste_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(PasteModel.password_hash).where(PasteModel.id == paste_id)
        )
        return result.scalar_one_or_none()

    async def update_fields(self, paste_id: str, values: Dict[str, Any]) -> Paste:
        """Write the given column values in a single UPDATE"""
        await self.session.execute(
            update(PasteModel)
            .where(PasteModel.id == paste_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self._fetch_one(self._select_with_owner().where(PasteModel.id == paste_id))

    async def delete(self, paste_id: str) -> bool:
        """Delete a paste; invites, versions and views go with it"""
        result = await self.session.execute(
            delete(PasteModel).where(PasteModel.id == paste_id)
        )
        return result.rowcount > 0

    async def delete_many(self, paste_ids: List[str]) -> int:
        result = await self.session.execute(
            delete(PasteModel).where(PasteModel.id.in_(paste_ids))
        )
        return result.rowcount

    async def find_expired_ids(self, now: datetime) -> List[str]:
        result = await self.session.execute(
            select(PasteModel.id).where(
                and_(PasteModel.expires_at.is_not(None), PasteModel.expires_at < now)
            )
        )
        return list(result.scalars().all())

    async def list_pastes(
        self,
        now: datetime,
        owner_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Paste]:
        """Non-expired pastes, newest first"""
        stmt = (
            self._select_with_owner()
            .where(*self._list_conditions(now, owner_id, search))
            .order_by(PasteModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_domain(p, owner_username=username) for p, username in result.all()]

    async def count_pastes(
        self,
        now: datetime,
        owner_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
    ) -> int:
        stmt = (
            select(func.count(PasteModel.id))
            .select_from(PasteModel)
            .outerjoin(UserModel, PasteModel.owner_id == UserModel.uuid)
            .where(*self._list_conditions(now, owner_id, search))
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_by_owner(self, owner_id: uuid.UUID) -> int:
        """Every paste the user owns, expired ones included"""
        result = await self.session.execute(
            select(func.count(PasteModel.id)).where(PasteModel.owner_id == owner_id)
        )
        return result.scalar() or 0

    def _list_conditions(self, now, owner_id, search) -> list:
        conditions = [or_(PasteModel.expires_at.is_(None), PasteModel.expires_at > now)]
        if owner_id is not None:
            conditions.append(PasteModel.owner_id == owner_id)
        if search:
            pattern = f"%{search}%"
            fields = [
                PasteModel.title.ilike(pattern),
                PasteModel.language.ilike(pattern),
                PasteModel.custom_slug.ilike(pattern),
            ]
            if owner_id is None:
                fields.append(UserModel.username.ilike(pattern))
            conditions.append(or_(*fields))
        return conditions

    def _to_domain(self, db_paste: PasteModel, owner_username: Optional[str] = None) -> Paste:
        """Convert a row into the domain entity"""
        return Paste(
            id=db_paste.id,
            content=db_paste.content,
            owner_id=db_paste.owner_id,
            visibility=db_paste.visibility,
            custom_slug=db_paste.custom_slug,
            language=db_paste.language,
            title=db_paste.title,
            password_hash=db_paste.password_hash,
            expires_at=db_paste.expires_at,
            burn_after_reading=db_paste.burn_after_reading,
            current_version=db_paste.current_version,
            versioning_enabled=db_paste.versioning_enabled,
            version_history_visible=db_paste.version_history_visible,
            views=db_paste.views,
            unique_views=db_paste.unique_views,
            last_viewed_at=db_paste.last_viewed_at,
            created_at=db_paste.created_at,
            updated_at=db_paste.updated_at,
            owner_username=owner_username,
        )


class PasteInviteRepository:
    """Data access for paste_invites"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, paste_id: str, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(PasteInviteModel.id)
            .where(and_(PasteInviteModel.paste_id == paste_id, PasteInviteModel.user_id == user_id))
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_for_paste(self, paste_id: str) -> List[InvitedUser]:
        """Invited users, oldest invite first"""
        result = await self.session.execute(
            select(UserModel.uuid, UserModel.username, PasteInviteModel.invited_at)
            .join(UserModel, PasteInviteModel.user_id == UserModel.uuid)
            .where(PasteInviteModel.paste_id == paste_id)
            .order_by(PasteInviteModel.invited_at, PasteInviteModel.id)
        )
        return [
            InvitedUser(id=user_id, username=username, invited_at=invited_at)
            for user_id, username, invited_at in result.all()
        ]

    async def list_user_ids(self, paste_id: str) -> List[uuid.UUID]:
        result = await self.session.execute(
            select(PasteInviteModel.user_id).where(PasteInviteModel.paste_id == paste_id)
        )
        return list(result.scalars().all())

    async def add_many(self, paste_id: str, user_ids: Iterable[uuid.UUID], invited_by: uuid.UUID) -> int:
        rows = [
            {"paste_id": paste_id, "user_id": user_id, "invited_by": invited_by, "invited_at": utc_now()}
            for user_id in user_ids
        ]
        if not rows:
            return 0
        await self.session.execute(insert(PasteInviteModel), rows)
        return len(rows)

    async def remove(self, paste_id: str, user_ids: Iterable[uuid.UUID]) -> int:
        user_ids = list(user_ids)
        if not user_ids:
            return 0
        result = await self.session.execute(
            delete(PasteInviteModel).where(
                and_(PasteInviteModel.paste_id == paste_id, PasteInviteModel.user_id.in_(user_ids))
            )
        )
        return result.rowcount

    async def remove_all(self, paste_id: str) -> int:
        result = await self.session.execute(
            delete(PasteInviteModel).where(PasteInviteModel.paste_id == paste_id)
        )
        return result.rowcount

    async def delete_for_pastes(self, paste_ids: List[str]) -> None:
        await self.session.execute(
            delete(PasteInviteModel).where(PasteInviteModel.paste_id.in_(paste_ids))
        )


class PasteVersionRepository:
    """Data access for paste_versions"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        paste_id: str,
        content: str,
        version_number: int,
        created_by: uuid.UUID,
        change_description: Optional[str] = None,
    ) -> None:
        self.session.add(PasteVersionModel(
            paste_id=paste_id,
            content=content,
            version_number=version_number,
            created_by=created_by,
            change_description=change_description,
            created_at=utc_now(),
        ))
        await self.session.flush()

    async def list_meta(self, paste_id: str) -> List[VersionMeta]:
        """Version numbers, timestamps and content lengths, newest first"""
        result = await self.session.execute(
            select(
                PasteVersionModel.version_number,
                PasteVersionModel.created_at,
                func.length(PasteVersionModel.content),
            )
            .where(PasteVersionModel.paste_id == paste_id)
            .order_by(PasteVersionModel.version_number.desc())
        )
        return [
            VersionMeta(version_number=number, created_at=created_at, length=length or 0)
            for number, created_at, length in result.all()
        ]

    async def get_content(self, paste_id: str, version_number: int) -> Optional[str]:
        result = await self.session.execute(
            select(PasteVersionModel.content)
            .where(and_(
                PasteVersionModel.paste_id == paste_id,
                PasteVersionModel.version_number == version_number,
            ))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def delete_all(self, paste_id: str) -> int:
        result = await self.session.execute(
            delete(PasteVersionModel).where(PasteVersionModel.paste_id == paste_id)
        )
        return result.rowcount

    async def delete_for_pastes(self, paste_ids: List[str]) -> None:
        await self.session.execute(
            delete(PasteVersionModel).where(PasteVersionModel.paste_id.in_(paste_ids))
        )


class PasteViewRepository:
    """Data access for view counters and the paste_views log"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def has_viewed(self, paste_id: str, viewer: ViewerInfo) -> bool:
        """Whether this viewer already has a logged view (by user id, or by IP when anonymous)"""
        stmt = select(PasteViewModel.id).where(PasteViewModel.paste_id == paste_id)
        if viewer.user_id is not None:
            stmt = stmt.where(PasteViewModel.user_id == viewer.user_id)
        else:
            stmt = stmt.where(and_(
                PasteViewModel.user_id.is_(None),
                PasteViewModel.viewer_ip == viewer.ip,
            ))
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def record(self, paste_id: str, viewer: ViewerInfo, count_unique: bool) -> None:
        """Bump counters and append one analytics row"""
        now = utc_now()
        await self.session.execute(
            update(PasteModel)
            .where(PasteModel.id == paste_id)
            .values(
                views=PasteModel.views + 1,
                unique_views=PasteModel.unique_views + (1 if count_unique else 0),
                last_viewed_at=now,
                # reads are not edits
                updated_at=PasteModel.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.add(PasteViewModel(
            paste_id=paste_id,
            viewer_ip=viewer.ip[:45] if viewer.ip else None,
            user_agent=viewer.user_agent[:500] if viewer.user_agent else None,
            user_id=viewer.user_id,
            referrer=viewer.referrer[:500] if viewer.referrer else None,
            viewed_at=now,
        ))
        await self.session.flush()

    async def delete_for_pastes(self, paste_ids: List[str]) -> None:
        await self.session.execute(
            delete(PasteViewModel).where(PasteViewModel.paste_id.in_(paste_ids))
        )
