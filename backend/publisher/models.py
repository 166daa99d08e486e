# backend/publisher/models.py
"""
🏗️ SCHEDULED PUBLISHER - Database Models
SQLAlchemy models for users, connected accounts, content and the publish ledger
"""

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, JSON, ForeignKey,
    Enum as SQLEnum, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from enum import Enum

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; all columns store UTC without tzinfo"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

# ============================================================================
# ENUMS
# ============================================================================

class Platform(str, Enum):
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"

class ContentStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    PUBLISHED = "published"
    FAILED = "failed"

class ProcessingStage(str, Enum):
    PUBLISHING = "publishing"
    AWAITING_CONTAINER = "awaiting_container"

class PrivacyStatus(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNLISTED = "unlisted"

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

# ============================================================================
# USER MODEL
# ============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)

    # Relationships
    social_accounts = relationship("SocialAccount", back_populates="user", cascade="all, delete-orphan")
    contents = relationship("Content", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(username='{self.username}', email='{self.email}')>"

# ============================================================================
# SOCIAL ACCOUNT MODEL
# ============================================================================

class SocialAccount(Base):
    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uq_social_accounts_user_platform"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    platform = Column(SQLEnum(Platform), nullable=False)
    platform_user_id = Column(String(100))  # IG business account id / YouTube channel id
    username = Column(String(100))

    # OAuth Tokens
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime)
    token_version = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="social_accounts")

    @property
    def is_token_expired(self):
        return self.token_expires_at is not None and self.token_expires_at <= utcnow()

    def __repr__(self):
        return f"<SocialAccount(platform='{self.platform}', username='{self.username}')>"

# ============================================================================
# CONTENT MODEL
# ============================================================================

class Content(Base):
    __tablename__ = "contents"
    __table_args__ = (
        Index("ix_contents_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_contents_status_stage_next_poll", "status", "processing_stage", "next_poll_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    platform = Column(SQLEnum(Platform), nullable=False, index=True)

    # Payload
    caption = Column(Text)
    title = Column(String(200))
    description = Column(Text)
    tags = Column(JSON, default=list)
    category_id = Column(String(10))
    privacy_status = Column(SQLEnum(PrivacyStatus), default=PrivacyStatus.PUBLIC)
    media_url = Column(String(1000))
    media_key = Column(String(500))
    thumbnail_key = Column(String(500))

    # Instagram options
    share_to_feed = Column(Boolean, default=True)
    thumb_offset = Column(Integer, default=0)

    # Lifecycle
    status = Column(SQLEnum(ContentStatus), nullable=False, default=ContentStatus.DRAFT)
    processing_stage = Column(SQLEnum(ProcessingStage))
    scheduled_at = Column(DateTime)
    published_at = Column(DateTime)
    published_post_id = Column(String(100))
    error = Column(Text)

    # Remote references
    instagram_creation_id = Column(String(100))
    instagram_media_id = Column(String(100))
    youtube_video_id = Column(String(100))
    youtube_url = Column(String(500))

    # Container polling
    poll_attempts = Column(Integer, nullable=False, default=0)
    next_poll_at = Column(DateTime)
    container_created_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="contents")

    def __repr__(self):
        return f"<Content(id={self.id}, platform='{self.platform}', status='{self.status}')>"

# ============================================================================
# PUBLISH JOB MODEL
# ============================================================================

class PublishJob(Base):
    __tablename__ = "publish_jobs"
    __table_args__ = (
        UniqueConstraint("content_id", "platform", name="uq_publish_jobs_content_platform"),
        Index("ix_publish_jobs_status_created_at", "status", "created_at"),
        Index("ix_publish_jobs_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    content_id = Column(Integer, ForeignKey("contents.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    platform = Column(SQLEnum(Platform), nullable=False)

    status = Column(SQLEnum(JobStatus), nullable=False, default=JobStatus.PENDING)
    scheduled_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    attempts = Column(Integer, nullable=False, default=0)

    result = Column(JSON)         # {"success": bool, "postId": str} | {"success": false, "error": str}
    job_metadata = Column("metadata", JSON)  # platform-tagged, see schemas.publishing.JobMetadata

    processed_by = Column(String(50))
    source = Column(String(100))

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<PublishJob(content_id={self.content_id}, platform='{self.platform}', status='{self.status}')>"
