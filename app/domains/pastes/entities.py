import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from app.utils.time import utc_now


class Visibility(str, enum.Enum):
    """Who may read a paste"""
    PUBLIC = "PUBLIC"
    AUTHENTICATED = "AUTHENTICATED"
    INVITE_ONLY = "INVITE_ONLY"
    PRIVATE = "PRIVATE"


class Paste:
    """A stored text snippet"""

    def __init__(
        self,
        id: str,
        content: str,
        owner_id: Optional[uuid.UUID] = None,
        visibility: Visibility = Visibility.PUBLIC,
        custom_slug: Optional[str] = None,
        language: Optional[str] = "plaintext",
        title: Optional[str] = None,
        password_hash: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        burn_after_reading: bool = False,
        current_version: int = 1,
        versioning_enabled: bool = False,
        version_history_visible: bool = False,
        views: int = 0,
        unique_views: int = 0,
        last_viewed_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        owner_username: Optional[str] = None,
    ):
        self.id = id
        self.content = content
        self.owner_id = owner_id
        self.visibility = Visibility(visibility)
        self.custom_slug = custom_slug
        self.language = language
        self.title = title
        self.password_hash = password_hash
        self.expires_at = expires_at
        self.burn_after_reading = burn_after_reading
        self.current_version = current_version
        self.versioning_enabled = versioning_enabled
        self.version_history_visible = version_history_visible
        self.views = views
        self.unique_views = unique_views
        self.last_viewed_at = last_viewed_at
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or utc_now()
        self.owner_username = owner_username

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def slug(self) -> str:
        """Public identifier: the custom slug when set, otherwise the id"""
        return self.custom_slug or self.id

    def is_owner(self, user_id: Optional[uuid.UUID]) -> bool:
        return user_id is not None and self.owner_id == user_id

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utc_now())

    def __eq__(self, other) -> bool:
        if not isinstance(other, Paste):
            return False
        return self.id == other.id

    def __repr__(self) -> str:
        return f"Paste(id={self.id}, visibility={self.visibility.value}, version={self.current_version})"


@dataclass
class InvitedUser:
    id: uuid.UUID
    username: str
    invited_at: datetime


@dataclass
class VersionMeta:
    version_number: int
    created_at: datetime
    length: int
    delta: Optional[int] = None


@dataclass
class ForkedPasteData:
    """Draft for a new paste pre-filled from an existing one; nothing is persisted"""
    content: str
    language: str
    title: str
    visibility: Visibility
    custom_slug: str
    versioning_enabled: bool
    version_history_visible: bool
    burn_after_reading: bool
    expires_at: Optional[datetime]
    selected_version: Optional[int] = None
    invited_user_ids: List[uuid.UUID] = field(default_factory=list)
    invited_users: List[InvitedUser] = field(default_factory=list)


@dataclass
class ForkResult:
    success: bool
    data: Optional[ForkedPasteData] = None
    error: Optional[str] = None


@dataclass
class TransferResult:
    success: bool
    message: str


@dataclass
class ViewerInfo:
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    referrer: Optional[str] = None


@dataclass
class PasteListPage:
    pastes: List[Paste]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


@dataclass
class PasteViewResult:
    """What a reader gets back from opening a paste"""
    paste: Optional[Paste]
    password_required: bool = False
    is_owner: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_view_history: bool = False
    selected_version: Optional[int] = None
    versions: List[VersionMeta] = field(default_factory=list)
    invited_users: List[InvitedUser] = field(default_factory=list)
