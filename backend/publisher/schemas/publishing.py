# backend/publisher/schemas/publishing.py
"""
📋 SCHEDULED PUBLISHER - Publishing Schemas
Request/Response models for the cron triggers, retry and direct publish endpoints
"""

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from typing import Optional, List, Dict, Any, Literal, Union, Annotated
from datetime import datetime, timezone

from ..models import PrivacyStatus, Platform, JobStatus

# ============================================================================
# PUBLISH JOB METADATA (tagged by platform)
# ============================================================================

class InstagramJobMetadata(BaseModel):
    """Ledger metadata for an Instagram Reel publish"""
    model_config = ConfigDict(populate_by_name=True)

    platform: Literal["instagram"] = "instagram"
    media_type: str = Field(default="REELS", alias="mediaType")
    is_reel: bool = Field(default=True, alias="isReel")
    share_to_feed: bool = Field(default=True, alias="shareToFeed")
    thumb_offset: int = Field(default=0, alias="thumbOffset")

class YouTubeJobMetadata(BaseModel):
    """Ledger metadata for a YouTube upload"""
    model_config = ConfigDict(populate_by_name=True)

    platform: Literal["youtube"] = "youtube"
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    privacy_status: str = Field(default=PrivacyStatus.PUBLIC.value, alias="privacyStatus")

JobMetadata = Annotated[
    Union[InstagramJobMetadata, YouTubeJobMetadata],
    Field(discriminator="platform"),
]

job_metadata_adapter = TypeAdapter(JobMetadata)

# ============================================================================
# CRON TRIGGER
# ============================================================================

class CronTriggerRequest(BaseModel):
    """Body sent by the external timer"""
    model_config = ConfigDict(populate_by_name=True)

    current_time: Optional[datetime] = Field(default=None, alias="currentTime")
    source: str = "cron"

    @field_validator("current_time")
    @classmethod
    def to_naive_utc(cls, v):
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

# ============================================================================
# DIRECT PUBLISH
# ============================================================================

class DirectPublishRequest(BaseModel):
    """Publish now, either an existing content item or raw fields"""
    model_config = ConfigDict(populate_by_name=True)

    content_id: Optional[int] = Field(default=None, alias="contentId")
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    media_key: Optional[str] = Field(default=None, alias="mediaKey")
    thumbnail_key: Optional[str] = Field(default=None, alias="thumbnailKey")
    caption: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    privacy_status: PrivacyStatus = Field(default=PrivacyStatus.PUBLIC, alias="privacyStatus")
    share_to_feed: bool = Field(default=True, alias="shareToFeed")
    thumb_offset: int = Field(default=0, alias="thumbOffset")

# ============================================================================
# PUBLISH JOB HISTORY
# ============================================================================

class PublishJobResponse(BaseModel):
    """Schema for publish job response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    content_id: Optional[int] = None
    platform: Platform
    status: JobStatus
    scheduled_at: datetime
    completed_at: Optional[datetime] = None
    attempts: int
    result: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="job_metadata")
    processed_by: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[datetime] = None
