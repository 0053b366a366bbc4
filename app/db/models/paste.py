from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey, UUID, Enum,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.db.base import TimestampMixin
from app.domains.pastes.entities import Visibility
from app.utils.time import utc_now


class Paste(TimestampMixin, Base):
    __tablename__ = "pastes"

    id = Column(String(8), primary_key=True)
    custom_slug = Column(String(100), unique=True, nullable=True)
    content = Column(Text, nullable=False)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.uuid", ondelete="CASCADE"), nullable=True)
    visibility = Column(Enum(Visibility, name="visibility"), default=Visibility.PUBLIC, nullable=False)
    language = Column(String(50), default="plaintext")
    title = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    burn_after_reading = Column(Boolean, default=False, nullable=False)

    # counters
    views = Column(Integer, default=0, nullable=False)
    unique_views = Column(Integer, default=0, nullable=False)
    last_viewed_at = Column(DateTime, nullable=True)

    # versioning
    current_version = Column(Integer, default=1, nullable=False)
    versioning_enabled = Column(Boolean, default=False, nullable=False)
    version_history_visible = Column(Boolean, default=False, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="owned_pastes")
    invites = relationship("PasteInvite", back_populates="paste", passive_deletes=True)
    versions = relationship("PasteVersion", back_populates="paste", passive_deletes=True)
    view_log = relationship("PasteView", back_populates="paste", passive_deletes=True)

    __table_args__ = (
        Index("pastes_owner_id_idx", "owner_id"),
        Index("pastes_visibility_idx", "visibility"),
        Index("pastes_created_at_idx", "created_at"),
    )


class PasteInvite(Base):
    __tablename__ = "paste_invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    paste_id = Column(String(8), ForeignKey("pastes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.uuid", ondelete="CASCADE"), nullable=False, index=True)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("users.uuid"), nullable=False)
    invited_at = Column(DateTime, default=utc_now, nullable=False)

    paste = relationship("Paste", back_populates="invites")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("paste_id", "user_id", name="paste_invites_paste_user_unique"),
    )


class PasteVersion(Base):
    __tablename__ = "paste_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    paste_id = Column(String(8), ForeignKey("pastes.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    version_number = Column(Integer, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.uuid"), nullable=False)
    change_description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    paste = relationship("Paste", back_populates="versions")
    creator = relationship("User")

    __table_args__ = (
        UniqueConstraint("paste_id", "version_number", name="paste_versions_paste_version_unique"),
    )


class PasteView(Base):
    """Analytics log, one row per counted read"""
    __tablename__ = "paste_views"

    id = Column(Integer, primary_key=True, autoincrement=True)
    paste_id = Column(String(8), ForeignKey("pastes.id", ondelete="CASCADE"), nullable=False, index=True)
    viewer_ip = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.uuid", ondelete="SET NULL"), nullable=True, index=True)
    referrer = Column(Text, nullable=True)
    viewed_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    paste = relationship("Paste", back_populates="view_log")
