from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.db.models.paste import Paste as PasteModel
from app.db.models.user import User as UserModel


class PasteStatsRepository:
    """Aggregate queries over all paste rows, expired ones included"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def totals(self, since_24h: datetime, since_7d: datetime, since_30d: datetime) -> Dict[str, int]:
        paste_count = func.count(PasteModel.id)
        stmt = select(
            paste_count.label("total_pastes"),
            func.coalesce(func.sum(PasteModel.views), 0).label("total_views"),
            func.coalesce(func.sum(PasteModel.unique_views), 0).label("total_unique_views"),
            paste_count.filter(PasteModel.owner_id.is_not(None)).label("authed_pastes"),
            paste_count.filter(PasteModel.owner_id.is_(None)).label("unauthed_pastes"),
            paste_count.filter(PasteModel.password_hash.is_not(None)).label("password_protected"),
            paste_count.filter(PasteModel.created_at >= since_24h).label("last_24h"),
            paste_count.filter(PasteModel.created_at >= since_7d).label("last_7d"),
            paste_count.filter(PasteModel.created_at >= since_30d).label("last_30d"),
        )
        result = await self.session.execute(stmt)
        return {key: int(value or 0) for key, value in result.one()._mapping.items()}

    async def count_by_visibility(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(PasteModel.visibility, func.count(PasteModel.id)).group_by(PasteModel.visibility)
        )
        return {visibility.value: count for visibility, count in result.all()}

    async def language_distribution(self, limit: int = 10) -> List[Dict[str, Any]]:
        paste_count = func.count(PasteModel.id)
        result = await self.session.execute(
            select(PasteModel.language, paste_count)
            .group_by(PasteModel.language)
            .order_by(paste_count.desc(), PasteModel.language)
            .limit(limit)
        )
        return [{"language": language or "plaintext", "count": count} for language, count in result.all()]

    async def most_viewed(self) -> Optional[Dict[str, Any]]:
        result = await self.session.execute(
            select(
                PasteModel.id,
                PasteModel.title,
                PasteModel.views,
                PasteModel.visibility,
                PasteModel.created_at,
                PasteModel.custom_slug,
                UserModel.username.label("owner_username"),
            )
            .outerjoin(UserModel, PasteModel.owner_id == UserModel.uuid)
            .order_by(PasteModel.views.desc(), PasteModel.created_at.desc())
            .limit(1)
        )
        row = result.first()
        return dict(row._mapping) if row else None

    async def most_active_users(self, limit: int = 5) -> List[Dict[str, Any]]:
        paste_count = func.count(PasteModel.id)
        result = await self.session.execute(
            select(UserModel.uuid, UserModel.username, paste_count)
            .join(PasteModel, PasteModel.owner_id == UserModel.uuid)
            .group_by(UserModel.uuid, UserModel.username)
            .order_by(paste_count.desc(), UserModel.username)
            .limit(limit)
        )
        return [
            {"user_id": user_id, "username": username, "paste_count": count}
            for user_id, username, count in result.all()
        ]
