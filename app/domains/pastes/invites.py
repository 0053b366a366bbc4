import logging
import uuid
from typing import Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repositories.paste_repository import PasteInviteRepository
from app.domains.pastes.entities import InvitedUser

logger = logging.getLogger(__name__)


class InviteRegistry:
    """Who may read an INVITE_ONLY paste"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.invite_repository = PasteInviteRepository(session)

    async def has_invite(self, paste_id: str, user_id: uuid.UUID) -> bool:
        return await self.invite_repository.exists(paste_id, user_id)

    async def list_invites(self, paste_id: str) -> List[InvitedUser]:
        """Invited users ordered by invite time, oldest first"""
        return await self.invite_repository.list_for_paste(paste_id)

    async def add_invites(
        self, paste_id: str, user_ids: Iterable[uuid.UUID], invited_by: uuid.UUID
    ) -> List[uuid.UUID]:
        """Invite users, skipping anyone already invited. Returns the newly invited ids."""
        existing = set(await self.invite_repository.list_user_ids(paste_id))
        new_ids = []
        for user_id in user_ids:
            if user_id in existing or user_id in new_ids:
                continue
            new_ids.append(user_id)

        if new_ids:
            await self.invite_repository.add_many(paste_id, new_ids, invited_by)
            logger.debug(f"Invited {len(new_ids)} user(s) to paste {paste_id}")
        return new_ids

    async def remove_invites(self, paste_id: str, user_ids: Iterable[uuid.UUID]) -> int:
        removed = await self.invite_repository.remove(paste_id, user_ids)
        logger.debug(f"Removed {removed} invite(s) from paste {paste_id}")
        return removed

    async def remove_all_invites(self, paste_id: str) -> int:
        removed = await self.invite_repository.remove_all(paste_id)
        logger.debug(f"Removed all {removed} invite(s) from paste {paste_id}")
        return removed
