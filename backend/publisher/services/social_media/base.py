# backend/publisher/services/social_media/base.py
"""
Shared adapter contracts: what goes into a publish call and what comes back.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ...models import Content, Platform, PrivacyStatus
from ...schemas.publishing import InstagramJobMetadata, YouTubeJobMetadata

# Instagram allows a cover frame within the first minute of a Reel
MAX_THUMB_OFFSET_SECONDS = 60


@dataclass
class PublishItem:
    """Platform-agnostic payload handed to an adapter"""
    platform: Platform
    caption: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    category_id: Optional[str] = None
    privacy_status: str = PrivacyStatus.PUBLIC.value
    media_url: Optional[str] = None
    media_key: Optional[str] = None
    thumbnail_key: Optional[str] = None
    share_to_feed: bool = True
    thumb_offset: int = 0

    @classmethod
    def from_content(cls, content: Content) -> "PublishItem":
        privacy = content.privacy_status or PrivacyStatus.PUBLIC
        return cls(
            platform=Platform(content.platform),
            caption=content.caption or "",
            title=content.title,
            description=content.description,
            tags=list(content.tags or []),
            category_id=content.category_id,
            privacy_status=PrivacyStatus(privacy).value,
            media_url=content.media_url,
            media_key=content.media_key,
            thumbnail_key=content.thumbnail_key,
            share_to_feed=True if content.share_to_feed is None else content.share_to_feed,
            thumb_offset=content.thumb_offset or 0,
        )


@dataclass
class PublishedRef:
    """Synchronous publish finished; the post is live"""
    post_id: str
    url: Optional[str] = None
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AsyncHandle:
    """Remote processing started; finalize later by polling the container"""
    container_id: str


@dataclass
class ContainerStatus:
    status: str  # processing | published | failed
    media_id: Optional[str] = None
    error: Optional[str] = None

    PROCESSING = "processing"
    PUBLISHED = "published"
    FAILED = "failed"


PublishOutcome = Union[PublishedRef, AsyncHandle]


def clamp_thumb_offset(value: Any) -> int:
    """Whole seconds in [0, 60]; anything unparsable becomes 0"""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return 0
    if seconds != seconds or seconds in (float("inf"), float("-inf")):
        return 0
    return max(0, min(MAX_THUMB_OFFSET_SECONDS, int(seconds // 1)))


def build_job_metadata(item: PublishItem) -> dict:
    """Platform-tagged metadata stored on the ledger row"""

    if item.platform == Platform.INSTAGRAM:
        metadata = InstagramJobMetadata(
            share_to_feed=item.share_to_feed,
            thumb_offset=clamp_thumb_offset(item.thumb_offset),
        )
    elif item.platform == Platform.YOUTUBE:
        metadata = YouTubeJobMetadata(
            title=item.title,
            description=item.description,
            tags=list(item.tags or []),
            privacy_status=item.privacy_status,
        )
    else:
        raise ValueError(f"Unsupported platform: {item.platform}")

    return metadata.model_dump(by_alias=True)
