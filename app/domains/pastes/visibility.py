"""Read access decisions for pastes."""

from typing import AbstractSet, Optional

from app.domains.identity.entities import User
from app.domains.identity.permissions import READ_PUBLIC, READ_AUTHENTICATED, READ_ANY
from app.domains.pastes.entities import Paste, Visibility
from app.domains.pastes.invites import InviteRegistry


async def can_user_view_paste(
    paste: Paste,
    user: Optional[User],
    permissions: AbstractSet[str],
    invite_registry: InviteRegistry,
) -> bool:
    """Whether the caller may read the paste.

    Only the INVITE_ONLY branch touches the database, for a single invite lookup.
    """
    if user is not None and user.is_banned:
        user = None

    if paste.visibility == Visibility.PUBLIC:
        return READ_PUBLIC in permissions

    if paste.visibility == Visibility.AUTHENTICATED:
        return user is not None and READ_AUTHENTICATED in permissions

    if paste.visibility == Visibility.INVITE_ONLY:
        if user is None:
            return False
        if paste.is_owner(user.id):
            return True
        if READ_ANY in permissions:
            return True
        return await invite_registry.has_invite(paste.id, user.id)

    if paste.visibility == Visibility.PRIVATE:
        if user is None:
            return False
        return paste.is_owner(user.id) or READ_ANY in permissions

    return False
