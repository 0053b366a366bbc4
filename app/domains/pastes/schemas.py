from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime
import re
import uuid

from app.domains.pastes.entities import Visibility
from app.utils.time import utc_now, to_naive_utc

MAX_CONTENT_BYTES = 400_000

SLUG_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# first path segments the app or a reverse proxy in front of it may claim
RESERVED_SLUGS = frozenset({
    "raw", "edit", "delete", "new", "create", "api", "auth", "admin", "me",
    "pastes", "users", "dashboard", "profile", "settings", "fork", "versions",
    "about", "contact", "contact-us", "help", "support", "faq", "terms",
    "terms-of-service", "privacy", "privacy-policy", "legal", "legal-notice",
    "docs", "documentation", "search", "blog", "news", "status", "health",
    "static", "assets", "public", "uploads", "files", "media", "images", "download",
    "login", "logout", "register", "account", "user", "robots", "sitemap",
    "favicon", "feed", "rss", "webhook", "oauth", "well-known", "error",
})


def validate_content(v: str) -> str:
    if len(v) == 0:
        raise ValueError('Content cannot be empty')
    byte_size = len(v.encode("utf-8"))
    if byte_size > MAX_CONTENT_BYTES:
        raise ValueError(f'Content cannot exceed 400KB (~{byte_size // 1000}KB/400KB)')
    return v


def validate_slug(v: str) -> str:
    if len(v) > 100:
        raise ValueError('URL must be 100 characters or less')
    if not SLUG_PATTERN.match(v):
        raise ValueError('URL can only contain letters, numbers, hyphens, and underscores')
    if v.lower() in RESERVED_SLUGS:
        raise ValueError('This URL is reserved and cannot be used')
    return v


def validate_future(v: Optional[datetime]) -> Optional[datetime]:
    v = to_naive_utc(v)
    if v is not None and v <= utc_now():
        raise ValueError('Expiry date must be in the future')
    return v


class PasteCreate(BaseModel):
    """New paste payload"""
    content: str
    visibility: Visibility = Visibility.PUBLIC
    custom_slug: Optional[str] = Field(None, min_length=1)
    language: str = Field("plaintext", min_length=1, max_length=50)
    title: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = Field(None, max_length=100)
    expires_at: Optional[datetime] = None
    invited_users: List[uuid.UUID] = Field(default_factory=list)
    burn_after_reading: bool = False
    versioning_enabled: bool = False
    version_history_visible: bool = False

    @field_validator('content')
    @classmethod
    def check_content(cls, v):
        return validate_content(v)

    @field_validator('custom_slug')
    @classmethod
    def check_slug(cls, v):
        return validate_slug(v) if v is not None else v

    @field_validator('expires_at')
    @classmethod
    def check_expiry(cls, v):
        return validate_future(v)

    @model_validator(mode='after')
    def check_consistency(self):
        if self.visibility == Visibility.INVITE_ONLY and not self.invited_users:
            raise ValueError('Invited users are required for INVITE_ONLY visibility')
        if self.visibility != Visibility.INVITE_ONLY and self.invited_users:
            raise ValueError('Invited users should only be specified for INVITE_ONLY visibility')
        if self.version_history_visible and not self.versioning_enabled:
            raise ValueError('Version history visibility can only be enabled when versioning is enabled')
        return self


class PasteUpdate(BaseModel):
    """Partial update. Fields left out of the payload stay as they are.

    Sending an empty string or null for custom_slug, title or password clears it.
    """
    content: Optional[str] = None
    visibility: Optional[Visibility] = None
    custom_slug: Optional[str] = None
    language: Optional[str] = Field(None, min_length=1, max_length=50)
    title: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = Field(None, max_length=100)
    expires_at: Optional[datetime] = None
    burn_after_reading: Optional[bool] = None
    versioning_enabled: Optional[bool] = None
    version_history_visible: Optional[bool] = None
    invited_users: List[uuid.UUID] = Field(default_factory=list)
    removed_users: List[uuid.UUID] = Field(default_factory=list)
    change_description: Optional[str] = Field(None, max_length=500)

    @field_validator('content')
    @classmethod
    def check_content(cls, v):
        return validate_content(v) if v is not None else v

    @field_validator('custom_slug')
    @classmethod
    def check_slug(cls, v):
        return validate_slug(v) if v else v

    @field_validator('expires_at')
    @classmethod
    def check_expiry(cls, v):
        return validate_future(v)

    @model_validator(mode='after')
    def check_consistency(self):
        if self.version_history_visible and self.versioning_enabled is False:
            raise ValueError('Version history visibility can only be enabled when versioning is enabled')
        return self


class PasteResponse(BaseModel):
    """A paste as returned to readers; the password hash is never exposed"""
    id: str
    slug: str
    custom_slug: Optional[str]
    content: str
    owner_id: Optional[uuid.UUID]
    owner_username: Optional[str]
    visibility: Visibility
    language: Optional[str]
    title: Optional[str]
    has_password: bool
    expires_at: Optional[datetime]
    burn_after_reading: bool
    current_version: int
    versioning_enabled: bool
    version_history_visible: bool
    views: int
    unique_views: int
    last_viewed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PasteSummary(BaseModel):
    """List row"""
    id: str
    slug: str
    custom_slug: Optional[str]
    owner_id: Optional[uuid.UUID]
    owner_username: Optional[str]
    visibility: Visibility
    language: Optional[str]
    title: Optional[str]
    has_password: bool
    expires_at: Optional[datetime]
    burn_after_reading: bool
    current_version: int
    views: int
    unique_views: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PasteListResponse(BaseModel):
    pastes: List[PasteSummary]
    total: int
    page: int
    limit: int
    total_pages: int


class InvitedUserResponse(BaseModel):
    id: uuid.UUID
    username: str
    invited_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VersionMetaResponse(BaseModel):
    version_number: int
    created_at: datetime
    length: int
    delta: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class VersionContentResponse(BaseModel):
    version_number: int
    content: str


class PasteViewResponse(BaseModel):
    """Result of opening a paste"""
    paste: Optional[PasteResponse] = None
    password_required: bool = False
    is_owner: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_view_history: bool = False
    selected_version: Optional[int] = None
    versions: List[VersionMetaResponse] = []
    invited_users: List[InvitedUserResponse] = []

    model_config = ConfigDict(from_attributes=True)


class UnlockRequest(BaseModel):
    password: str = Field(..., max_length=100)


class InviteRemoval(BaseModel):
    user_ids: List[uuid.UUID] = Field(..., min_length=1)


class TransferRequest(BaseModel):
    new_owner_id: uuid.UUID


class TransferResponse(BaseModel):
    success: bool
    message: str


class ForkDataResponse(BaseModel):
    """Draft for a new paste; submit it to POST /pastes to actually fork"""
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
    invited_user_ids: List[uuid.UUID] = []
    invited_users: List[InvitedUserResponse] = []

    model_config = ConfigDict(from_attributes=True)


class SlugAvailability(BaseModel):
    slug: str
    available: bool


class CleanupResultResponse(BaseModel):
    deleted_count: int
    errors: List[str]
    started_at: datetime
    finished_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CleanupStatusResponse(BaseModel):
    enabled: bool
    running: bool
    interval_seconds: int
    batch_size: int
    last_run: Optional[CleanupResultResponse] = None


class LanguageCountResponse(BaseModel):
    language: str
    count: int

    model_config = ConfigDict(from_attributes=True)


class MostViewedPasteResponse(BaseModel):
    id: str
    title: Optional[str]
    views: int
    visibility: Visibility
    created_at: datetime
    custom_slug: Optional[str]
    owner_username: str

    model_config = ConfigDict(from_attributes=True)


class ActiveUserResponse(BaseModel):
    user_id: uuid.UUID
    username: str
    paste_count: int

    model_config = ConfigDict(from_attributes=True)


class RecentActivityResponse(BaseModel):
    last_24h: int
    last_7d: int
    last_30d: int

    model_config = ConfigDict(from_attributes=True)


class PasteStatisticsResponse(BaseModel):
    """Admin dashboard numbers"""
    total_pastes: int
    total_views: int
    total_unique_views: int
    average_views_per_paste: float
    authed_pastes: int
    unauthed_pastes: int
    password_protected_count: int
    visibility_breakdown: Dict[str, int]
    language_distribution: List[LanguageCountResponse]
    most_viewed_paste: Optional[MostViewedPasteResponse]
    most_active_users: List[ActiveUserResponse]
    recent_activity: RecentActivityResponse
    generated_at: datetime

    model_config = ConfigDict(from_attributes=True)
