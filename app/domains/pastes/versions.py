from typing import AbstractSet, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repositories.paste_repository import PasteVersionRepository
from app.domains.identity.entities import User
from app.domains.identity.permissions import READ_ANY
from app.domains.pastes.entities import Paste, VersionMeta


def can_view_history(paste: Paste, user: Optional[User], permissions: AbstractSet[str]) -> bool:
    """Whether the caller may browse the paste's earlier versions"""
    if not paste.versioning_enabled:
        return False
    if user is not None and paste.is_owner(user.id):
        return True
    if READ_ANY in permissions:
        return True
    return paste.version_history_visible


class VersionStore:
    """Read access to content snapshots"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.version_repository = PasteVersionRepository(session)

    async def list_version_meta(self, paste_id: str) -> List[VersionMeta]:
        """Newest first"""
        return await self.version_repository.list_meta(paste_id)

    async def get_version_content(self, paste_id: str, version_number: int) -> Optional[str]:
        return await self.version_repository.get_content(paste_id, version_number)
