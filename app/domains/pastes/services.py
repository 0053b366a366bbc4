import logging
import uuid
from typing import Optional, List, Dict, Any

from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import atomic
from app.core.security import get_password_hash
from app.db.repositories.paste_repository import (
    PasteRepository, PasteVersionRepository, PasteViewRepository
)
from app.db.repositories.user_repository import UserRepository
from app.domains.identity.entities import User
from app.domains.identity.permissions import (
    resolve_permissions, READ_ANY, UPDATE_OWN, UPDATE_ANY, DELETE_OWN, DELETE_ANY
)
from app.domains.pastes.entities import (
    Paste, Visibility, ForkedPasteData, ForkResult, TransferResult, ViewerInfo,
    PasteListPage, PasteViewResult, VersionMeta,
)
from app.domains.pastes.exceptions import (
    PasteNotFoundError, SlugTakenError, AuthenticationRequiredError, PasteLimitExceededError
)
from app.domains.pastes.invites import InviteRegistry
from app.domains.pastes.passwords import PasswordGate
from app.domains.pastes.schemas import PasteCreate, PasteUpdate
from app.domains.pastes.versions import VersionStore, can_view_history
from app.domains.pastes.visibility import can_user_view_paste
from app.utils.ids import new_paste_id
from app.utils.time import utc_now, date_equals

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 10

FORK_NOT_FOUND = "Cannot fork paste: paste not found"
FORK_ACCESS_DENIED = "Access denied to forked paste"
FORK_PASSWORD_PROTECTED = "Cannot fork password-protected pastes"
FORK_SERVER_ERROR = "Server error: cannot fork paste"

# optional text columns where "" means "unset"
NULLABLE_TEXT_FIELDS = ("custom_slug", "title", "password_hash")

# columns that can never be cleared; an explicit null for them is ignored
NON_NULLABLE_FIELDS = (
    "content", "visibility", "language",
    "burn_after_reading", "versioning_enabled", "version_history_visible",
)


def get_changed_fields(current: Paste, supplied: Dict[str, Any]) -> Dict[str, Any]:
    """Fields whose supplied value differs from the current one"""
    changed = {}
    for name, value in supplied.items():
        if name in NULLABLE_TEXT_FIELDS:
            value = value or None
        current_value = getattr(current, name)
        if name == "expires_at":
            if date_equals(value, current_value):
                continue
        elif value == current_value:
            continue
        changed[name] = value
    return changed


class PasteService:
    """Creates, edits, forks, transfers and deletes pastes"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.paste_repository = PasteRepository(session)
        self.version_repository = PasteVersionRepository(session)
        self.user_repository = UserRepository(session)
        self.invites = InviteRegistry(session)
        self.versions = VersionStore(session)

    async def generate_paste_id(self) -> str:
        """Random id that collides with no existing id or custom slug"""
        for _ in range(MAX_ID_ATTEMPTS):
            paste_id = new_paste_id()
            if not await self.paste_repository.slug_exists(paste_id):
                return paste_id
        raise RuntimeError("Could not generate a unique paste id")

    async def is_slug_available(self, slug: str) -> bool:
        return not await self.paste_repository.slug_exists(slug)

    async def find_paste_by_slug(self, slug: str) -> Optional[Paste]:
        """Resolve by id or custom slug; expired pastes are treated as gone"""
        paste = await self.paste_repository.find_by_slug(slug)
        if paste is None or paste.is_expired():
            return None
        return paste

    async def get_paste_or_404(self, slug: str) -> Paste:
        paste = await self.find_paste_by_slug(slug)
        if paste is None:
            raise PasteNotFoundError(slug)
        return paste

    def check_can_modify(self, paste: Paste, user: Optional[User], action: str = "update") -> None:
        """Raise PermissionError unless the caller owns the paste or may act on any paste"""
        permissions = resolve_permissions(user)
        own, any_ = (UPDATE_OWN, UPDATE_ANY) if action == "update" else (DELETE_OWN, DELETE_ANY)
        if any_ in permissions:
            return
        if user is not None and paste.is_owner(user.id) and own in permissions:
            return
        raise PermissionError(f"You don't have permission to {action} this paste")

    async def _existing_invitees(self, user_ids: List[uuid.UUID], owner_id: Optional[uuid.UUID]) -> List[uuid.UUID]:
        """Drop the owner, reject unknown users"""
        wanted = [user_id for user_id in dict.fromkeys(user_ids) if user_id != owner_id]
        existing = set(await self.user_repository.filter_existing(wanted))
        missing = [str(user_id) for user_id in wanted if user_id not in existing]
        if missing:
            raise ValueError(f"Invited user not found: {', '.join(missing)}")
        return wanted

    async def create_paste(self, paste_data: PasteCreate, owner: Optional[User]) -> Paste:
        """Create a paste and its invites in one transaction"""
        if owner is None and not settings.allow_guest_pastes:
            raise PermissionError("Sign in to create pastes")

        owner_id = owner.id if owner else None

        if owner_id is not None:
            paste_count = await self.paste_repository.count_by_owner(owner_id)
            if paste_count >= settings.max_pastes_per_user:
                logger.warning(f"User {owner_id} reached the paste limit ({paste_count})")
                raise PasteLimitExceededError(settings.max_pastes_per_user)

        async with atomic(self.session):
            if paste_data.custom_slug and await self.paste_repository.slug_exists(paste_data.custom_slug):
                raise SlugTakenError(paste_data.custom_slug)

            paste = Paste(
                id=await self.generate_paste_id(),
                content=paste_data.content,
                owner_id=owner_id,
                visibility=paste_data.visibility,
                custom_slug=paste_data.custom_slug,
                language=paste_data.language,
                title=paste_data.title or None,
                password_hash=get_password_hash(paste_data.password) if paste_data.password else None,
                expires_at=paste_data.expires_at,
                burn_after_reading=paste_data.burn_after_reading,
                versioning_enabled=paste_data.versioning_enabled,
                version_history_visible=paste_data.version_history_visible,
            )
            created = await self.paste_repository.create(paste)

            # guests cannot invite
            if created.visibility == Visibility.INVITE_ONLY and owner_id is not None:
                invitees = await self._existing_invitees(paste_data.invited_users, owner_id)
                if not invitees:
                    raise ValueError("Invite at least one user other than yourself")
                await self.invites.add_invites(created.id, invitees, owner_id)

        created.owner_username = owner.username if owner else None
        logger.info(f"Created paste {created.id} ({created.visibility.value}) for owner {owner_id}")
        return created

    async def update_paste(self, paste_id: str, update_data: PasteUpdate, updated_by: uuid.UUID) -> Paste:
        """Apply a partial update.

        Only supplied fields are compared; a supplied value equal to the stored
        one is not a change. When nothing changes no row is written and the
        current paste is returned as is.
        """
        supplied = update_data.model_dump(
            exclude_unset=True,
            exclude={"invited_users", "removed_users", "change_description", "password"},
        )
        for name in NON_NULLABLE_FIELDS:
            if name in supplied and supplied[name] is None:
                del supplied[name]
        if "password" in update_data.model_fields_set:
            password = update_data.password
            supplied["password_hash"] = get_password_hash(password) if password and password.strip() else None

        async with atomic(self.session):
            current = await self.paste_repository.get_by_id(paste_id)
            if current is None:
                raise PasteNotFoundError(paste_id)

            new_slug = supplied.get("custom_slug")
            if new_slug and new_slug != current.custom_slug:
                if await self.paste_repository.slug_exists(new_slug, exclude_id=paste_id):
                    raise SlugTakenError(new_slug)

            changed = get_changed_fields(current, supplied)
            has_changes = bool(changed)

            if update_data.removed_users:
                removed = await self.invites.remove_invites(paste_id, update_data.removed_users)
                has_changes = has_changes or removed > 0

            final_visibility = supplied.get("visibility", current.visibility)
            if final_visibility == Visibility.INVITE_ONLY:
                if update_data.invited_users:
                    invitees = await self._existing_invitees(update_data.invited_users, current.owner_id)
                    added = await self.invites.add_invites(paste_id, invitees, updated_by)
                    has_changes = has_changes or bool(added)
            elif "visibility" in supplied and current.visibility == Visibility.INVITE_ONLY:
                await self.invites.remove_all_invites(paste_id)
                has_changes = True

            if not has_changes:
                logger.debug(f"Update of paste {paste_id} changed nothing")
                return current

            values = dict(changed)
            values["updated_at"] = utc_now()

            will_track_versions = values.get("versioning_enabled", current.versioning_enabled)
            history_visible = values.get("version_history_visible", current.version_history_visible)

            if current.versioning_enabled and not will_track_versions:
                await self.version_repository.delete_all(paste_id)
                values["current_version"] = 1
                if current.version_history_visible:
                    values["version_history_visible"] = False
            elif history_visible and not will_track_versions:
                raise ValueError("Version history visibility can only be enabled when versioning is enabled")

            if "content" in changed:
                if will_track_versions:
                    await self.version_repository.create(
                        paste_id=paste_id,
                        content=current.content,
                        version_number=current.current_version,
                        created_by=updated_by,
                        change_description=update_data.change_description or f"Version {current.current_version}",
                    )
                    values["current_version"] = current.current_version + 1
                else:
                    values["current_version"] = 1

            logger.debug(f"Updating paste {paste_id} with fields {sorted(values)}")
            updated = await self.paste_repository.update_fields(paste_id, values)

        logger.info(f"Updated paste {paste_id} (version {updated.current_version})")
        return updated

    async def delete_paste(self, paste_id: str) -> bool:
        """Hard delete; invites, versions and views cascade"""
        try:
            async with atomic(self.session):
                deleted = await self.paste_repository.delete(paste_id)
        except SQLAlchemyError as e:
            logger.error(f"Error deleting paste {paste_id}: {e}")
            return False

        if deleted:
            logger.info(f"Deleted paste {paste_id}")
        return deleted

    async def transfer_ownership(
        self,
        paste_id: str,
        new_owner_id: uuid.UUID,
        current_owner_id: Optional[uuid.UUID],
    ) -> TransferResult:
        """Hand a paste to another user. Failed preconditions change nothing."""
        async with atomic(self.session):
            paste = await self.paste_repository.get_by_id(paste_id)
            if paste is None:
                return TransferResult(success=False, message="Paste not found")

            if paste.owner_id != current_owner_id:
                return TransferResult(success=False, message="Current owner mismatch")

            if current_owner_id == new_owner_id:
                return TransferResult(success=False, message="Cannot transfer to the same owner")

            if not await self.user_repository.exists(new_owner_id):
                return TransferResult(success=False, message="New owner not found")

            await self.paste_repository.update_fields(
                paste_id, {"owner_id": new_owner_id, "updated_at": utc_now()}
            )

            if paste.visibility == Visibility.INVITE_ONLY:
                # owning implies access
                await self.invites.remove_invites(paste_id, [new_owner_id])
                if current_owner_id is not None:
                    await self.invites.add_invites(paste_id, [current_owner_id], new_owner_id)

        logger.info(f"Transferred paste {paste_id} from {current_owner_id} to {new_owner_id}")
        return TransferResult(success=True, message="Ownership transferred successfully")

    async def get_fork_data(
        self,
        slug: str,
        user: Optional[User],
        is_admin: bool,
        version: Optional[int] = None,
    ) -> ForkResult:
        """Build a draft for a new paste from an existing one. Writes nothing."""
        try:
            paste = await self.find_paste_by_slug(slug)
            if paste is None:
                logger.warning(f"Fork attempted on non-existent paste: {slug}")
                return ForkResult(success=False, error=FORK_NOT_FOUND)

            permissions = resolve_permissions(user)
            if not await can_user_view_paste(paste, user, permissions, self.invites):
                logger.warning(f"Fork attempted on inaccessible paste {paste.id} by {user.id if user else None}")
                return ForkResult(success=False, error=FORK_ACCESS_DENIED)

            is_owner = user is not None and paste.is_owner(user.id)
            if paste.has_password and not is_owner and not is_admin:
                logger.warning(f"Fork attempted on password-protected paste: {paste.id}")
                return ForkResult(success=False, error=FORK_PASSWORD_PROTECTED)

            content = paste.content
            selected_version = version if version and version > 0 else None
            # without versioning the requested number is passed through untouched
            if selected_version is not None and paste.versioning_enabled:
                if is_owner or is_admin or can_view_history(paste, user, permissions):
                    version_content = await self.versions.get_version_content(paste.id, selected_version)
                    if version_content is not None:
                        content = version_content
                    if selected_version > paste.current_version:
                        selected_version = paste.current_version
                else:
                    selected_version = None

            invited_users = []
            if paste.visibility == Visibility.INVITE_ONLY:
                invited_users = await self.invites.list_invites(paste.id)
                # the forker becomes the owner
                if user is not None:
                    invited_users = [invited for invited in invited_users if invited.id != user.id]

            return ForkResult(success=True, data=ForkedPasteData(
                content=content,
                language=paste.language or "plaintext",
                title=paste.title or "",
                visibility=paste.visibility,
                custom_slug="",
                versioning_enabled=paste.versioning_enabled,
                version_history_visible=paste.version_history_visible,
                burn_after_reading=paste.burn_after_reading,
                expires_at=paste.expires_at,
                selected_version=selected_version,
                invited_user_ids=[invited.id for invited in invited_users],
                invited_users=invited_users,
            ))
        except SQLAlchemyError as e:
            logger.error(f"Error fetching fork data for {slug}: {e}")
            return ForkResult(success=False, error=FORK_SERVER_ERROR)

    async def remove_invites(self, paste_id: str, user_ids: List[uuid.UUID]) -> int:
        """Revoke invites one by one, outside of a full update"""
        async with atomic(self.session):
            removed = await self.invites.remove_invites(paste_id, user_ids)
            if removed:
                await self.paste_repository.update_fields(paste_id, {"updated_at": utc_now()})
        return removed

    async def list_user_pastes(
        self,
        owner_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
    ) -> PasteListPage:
        """A user's own non-expired pastes, newest first"""
        now = utc_now()
        offset = (page - 1) * limit
        pastes = await self.paste_repository.list_pastes(now, owner_id=owner_id, search=search, limit=limit, offset=offset)
        total = await self.paste_repository.count_pastes(now, owner_id=owner_id, search=search)
        return PasteListPage(pastes=pastes, page=page, limit=limit, total=total)

    async def list_all_pastes(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
    ) -> PasteListPage:
        """Every non-expired paste, for admins; search also matches owner usernames"""
        now = utc_now()
        offset = (page - 1) * limit
        pastes = await self.paste_repository.list_pastes(now, search=search, limit=limit, offset=offset)
        total = await self.paste_repository.count_pastes(now, search=search)
        return PasteListPage(pastes=pastes, page=page, limit=limit, total=total)


class PasteViewService:
    """Reading pastes: access checks, password unlock, counters and burn-after-reading"""

    def __init__(self, session: AsyncSession, pwd_context: Optional[CryptContext] = None):
        self.session = session
        self.paste_service = PasteService(session)
        self.view_repository = PasteViewRepository(session)
        self.invites = InviteRegistry(session)
        self.versions = VersionStore(session)
        self.password_gate = PasswordGate(session, pwd_context)

    async def _load_readable(self, slug: str, user: Optional[User]):
        paste = await self.paste_service.get_paste_or_404(slug)
        permissions = resolve_permissions(user)

        if not await can_user_view_paste(paste, user, permissions, self.invites):
            if user is None:
                logger.warning(f"Access denied for anonymous caller on paste {paste.id}")
                raise AuthenticationRequiredError("Authentication required")
            logger.warning(f"Access denied for user {user.id} on paste {paste.id} ({paste.visibility.value})")
            raise PermissionError("Access denied")

        return paste, permissions

    async def view_paste(
        self,
        slug: str,
        user: Optional[User],
        viewer: ViewerInfo,
        version: Optional[int] = None,
    ) -> PasteViewResult:
        """Open a paste. Password-protected pastes only return a marker unless the caller owns it or is an admin."""
        paste, permissions = await self._load_readable(slug, user)

        is_owner = user is not None and paste.is_owner(user.id)
        if paste.has_password and not is_owner and READ_ANY not in permissions:
            return PasteViewResult(paste=None, password_required=True)

        return await self._read(paste, user, permissions, viewer, version)

    async def unlock_paste(
        self,
        slug: str,
        password: str,
        user: Optional[User],
        viewer: ViewerInfo,
        version: Optional[int] = None,
    ) -> PasteViewResult:
        """Open a password-protected paste"""
        paste, permissions = await self._load_readable(slug, user)

        if paste.has_password and not await self.password_gate.validate(paste.id, password):
            logger.warning(f"Wrong password for paste {paste.id}")
            raise PermissionError("Invalid password")

        return await self._read(paste, user, permissions, viewer, version)

    async def read_raw(
        self,
        slug: str,
        user: Optional[User],
        viewer: ViewerInfo,
        password: Optional[str] = None,
        version: Optional[int] = None,
    ) -> str:
        """Plain content for scripts and curl. Everyone but the owner must pass the password."""
        paste, permissions = await self._load_readable(slug, user)

        if paste.has_password and not paste.is_owner(user.id if user else None):
            if not password:
                raise PermissionError("Password required. Provide via ?password=xxx or X-Paste-Password header")
            if not await self.password_gate.validate(paste.id, password):
                logger.warning(f"Wrong password for raw read of paste {paste.id}")
                raise PermissionError("Invalid password")

        result = await self._read(paste, user, permissions, viewer, version)
        return result.paste.content

    async def _read(self, paste, user, permissions, viewer: ViewerInfo, version: Optional[int]) -> PasteViewResult:
        is_owner = user is not None and paste.is_owner(user.id)
        selected_version = version if version and version > 0 else None

        # only reads of the latest content count as views
        if selected_version is None:
            viewer.user_id = user.id if user else None
            count_unique = not is_owner and not await self.view_repository.has_viewed(paste.id, viewer)
            async with atomic(self.session):
                await self.view_repository.record(paste.id, viewer, count_unique)
            paste.views += 1
            paste.unique_views += 1 if count_unique else 0
            paste.last_viewed_at = utc_now()

        invited_users = []
        if paste.visibility == Visibility.INVITE_ONLY:
            invited_users = await self.invites.list_invites(paste.id)

        history_visible = can_view_history(paste, user, permissions)
        versions = []
        if history_visible:
            versions = await self.versions.list_version_meta(paste.id)
            for meta in versions:
                meta.delta = len(paste.content) - meta.length
            if selected_version is not None:
                version_content = await self.versions.get_version_content(paste.id, selected_version)
                if version_content is not None:
                    paste.content = version_content
                if selected_version > paste.current_version:
                    logger.warning(
                        f"Requested version {selected_version} of paste {paste.id} exceeds "
                        f"current version {paste.current_version}"
                    )
                    selected_version = paste.current_version
        else:
            selected_version = None

        result = PasteViewResult(
            paste=paste,
            is_owner=is_owner,
            can_edit=is_owner or UPDATE_ANY in permissions,
            can_delete=is_owner or DELETE_ANY in permissions,
            can_view_history=history_visible,
            selected_version=selected_version,
            versions=versions,
            invited_users=invited_users,
        )

        if paste.burn_after_reading and not is_owner:
            logger.info(f"Burning paste {paste.id} after reading")
            await self.paste_service.delete_paste(paste.id)

        return result

    async def _load_with_history(self, slug: str, user: Optional[User]):
        paste, permissions = await self._load_readable(slug, user)

        is_owner = user is not None and paste.is_owner(user.id)
        if paste.has_password and not is_owner and READ_ANY not in permissions:
            raise PermissionError("Password required")
        if not can_view_history(paste, user, permissions):
            raise PermissionError("Version history is not available for this paste")
        return paste

    async def list_versions(self, slug: str, user: Optional[User]) -> List[VersionMeta]:
        """Version metadata, newest first, with the length difference to the latest content"""
        paste = await self._load_with_history(slug, user)
        versions = await self.versions.list_version_meta(paste.id)
        for meta in versions:
            meta.delta = len(paste.content) - meta.length
        return versions

    async def get_version(self, slug: str, user: Optional[User], version_number: int) -> str:
        """Content of one snapshot; the current version number returns the live content"""
        paste = await self._load_with_history(slug, user)
        if version_number == paste.current_version:
            return paste.content
        content = await self.versions.get_version_content(paste.id, version_number)
        if content is None:
            raise PasteNotFoundError(f"{slug} version {version_number}")
        return content
