# backend/publisher/services/social_media/instagram_service.py
"""
📸 Instagram Service - Instagram Reels Publishing
Container-based: create a REELS container now, poll and publish it later.
"""

from typing import Dict, Any, Optional
import logging
import aiohttp

from ...config import settings
from ...exceptions import PublishError, StorageError, ValidationError
from ...models import SocialAccount, Platform
from ..file_storage import storage_service
from .base import PublishItem, AsyncHandle, ContainerStatus, clamp_thumb_offset

logger = logging.getLogger(__name__)

# Meta subcode for media the Reels pipeline cannot transcode
VIDEO_FORMAT_ERROR_CODE = "2207076"
VIDEO_FORMAT_ERROR_MESSAGE = (
    "Video format incompatible with Instagram Reels. Please ensure: MP4 format, "
    "vertical (9:16), max 60s, H.264 codec. Try re-uploading or use a different video."
)

TOKEN_REFRESH_URL = "https://graph.instagram.com/refresh_access_token"


def describe_container_error(raw_status: Optional[str]) -> str:
    """Turn Meta's container status text into the message stored on the content"""
    message = raw_status or "Media processing failed"
    if VIDEO_FORMAT_ERROR_CODE in message:
        return VIDEO_FORMAT_ERROR_MESSAGE
    return message


class InstagramService:
    """Service for Instagram Graph API interactions"""

    platform = Platform.INSTAGRAM

    def __init__(self, storage=None, timeout: Optional[float] = None):
        self.base_url = settings.meta_graph_url
        self.storage = storage or storage_service
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.PLATFORM_HTTP_TIMEOUT_SECONDS)

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=self.timeout)

    # ========================================================================
    # REEL CONTAINER
    # ========================================================================

    async def publish(self, account: SocialAccount, item: PublishItem) -> AsyncHandle:
        """Start a Reel publish; the poller finishes it"""

        if not item.media_url:
            raise ValidationError("Missing required field: mediaUrl")

        container_id = await self.create_container(
            account,
            item.media_url,
            item.caption,
            share_to_feed=item.share_to_feed,
            thumb_offset=item.thumb_offset,
        )
        return AsyncHandle(container_id=container_id)

    async def create_container(
        self,
        account: SocialAccount,
        media_url: str,
        caption: str,
        share_to_feed: bool = True,
        thumb_offset: Any = 0,
    ) -> str:
        """Create a REELS media container and return its creation id"""

        if not account.platform_user_id:
            raise PublishError(
                "No Instagram Business Account found. Please reconnect your account.",
                platform=self.platform.value,
            )

        video_url = await self._resolve_media_url(media_url)
        offset = clamp_thumb_offset(thumb_offset)

        params = {
            'media_type': 'REELS',
            'video_url': video_url,
            'caption': self._format_caption(caption or ""),
            'share_to_feed': 'true' if share_to_feed else 'false',
            'access_token': account.access_token,
        }
        if offset > 0:
            params['thumb_offset'] = str(offset)

        logger.info(
            f"Creating Instagram media container for account {account.platform_user_id} "
            f"(share_to_feed={share_to_feed}, thumb_offset={offset})"
        )

        async with self._session() as session:
            container_url = f"{self.base_url}/{account.platform_user_id}/media"
            async with session.post(container_url, data=params) as response:
                if response.status >= 400:
                    await self._raise_api_error(response, "Container creation failed")
                container_data = await response.json()

        container_id = container_data.get('id')
        if not container_id:
            raise PublishError("Failed to create Instagram media container", platform=self.platform.value)

        logger.info(f"✅ Instagram container created: {container_id}")
        return container_id

    async def check_and_publish_container(
        self,
        account: SocialAccount,
        container_id: str,
    ) -> ContainerStatus:
        """Check container readiness; publish it once FINISHED"""

        async with self._session() as session:
            status_url = f"{self.base_url}/{container_id}"
            status_params = {
                'fields': 'status_code,status',
                'access_token': account.access_token,
            }

            async with session.get(status_url, params=status_params) as response:
                if response.status >= 400:
                    await self._raise_api_error(response, "Container status check failed", retryable=True)
                status_data = await response.json()

            status_code = status_data.get('status_code')
            logger.info(f"Instagram container {container_id} status: {status_code}")

            if status_code in ('ERROR', 'EXPIRED'):
                return ContainerStatus(
                    ContainerStatus.FAILED,
                    error=describe_container_error(status_data.get('status')),
                )

            if status_code not in ('FINISHED', 'PUBLISHED'):
                return ContainerStatus(ContainerStatus.PROCESSING)

            # Caption already lives on the container
            publish_url = f"{self.base_url}/{account.platform_user_id}/media_publish"
            publish_params = {
                'creation_id': container_id,
                'access_token': account.access_token,
            }

            async with session.post(publish_url, data=publish_params) as response:
                if response.status >= 400:
                    await self._raise_api_error(response, "Publish failed")
                publish_data = await response.json()

        media_id = publish_data.get('id')
        if not media_id:
            raise PublishError("Instagram did not return a media id", platform=self.platform.value)

        return ContainerStatus(ContainerStatus.PUBLISHED, media_id=media_id)

    # ========================================================================
    # TOKENS
    # ========================================================================

    async def refresh_long_lived_token(self, access_token: str) -> Dict[str, Any]:
        """Extend a long-lived token; returns {access_token, expires_in}"""

        params = {
            'grant_type': 'ig_refresh_token',
            'access_token': access_token,
        }

        async with self._session() as session:
            async with session.get(TOKEN_REFRESH_URL, params=params) as response:
                if response.status >= 400:
                    await self._raise_api_error(response, "Token refresh failed")
                return await response.json()

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    async def _resolve_media_url(self, media_url: str) -> str:
        """Fall back to a presigned URL when our public storage URL is not reachable"""

        if not self.storage.is_storage_url(media_url):
            return media_url

        try:
            async with self._session() as session:
                async with session.head(media_url) as response:
                    if response.status < 400:
                        return media_url
                    logger.warning(
                        f"Direct storage URL HEAD returned {response.status}, falling back to signed URL"
                    )
        except aiohttp.ClientError as e:
            logger.warning(f"Direct storage URL HEAD failed ({e}), falling back to signed URL")

        try:
            key = self.storage.key_from_url(media_url)
            return self.storage.generate_presigned_url(key)
        except StorageError as e:
            raise PublishError(f"Unable to build a reachable media URL: {e.message}", platform=self.platform.value)

    async def _raise_api_error(self, response: aiohttp.ClientResponse, prefix: str, retryable: bool = False):
        error_text = await response.text()
        transient = retryable or response.status == 429 or response.status >= 500
        raise PublishError(
            f"{prefix}: Instagram API error: {response.status} - {error_text}",
            platform=self.platform.value,
            details={"status": response.status},
            retryable=transient,
        )

    def _format_caption(self, caption: str) -> str:
        """Format caption with proper hashtag spacing"""

        lines = caption.split('\n')

        hashtag_start = -1
        for i, line in enumerate(lines):
            if line.strip().startswith('#'):
                hashtag_start = i
                break

        # Blank line before a trailing hashtag block
        if hashtag_start > 0 and lines[hashtag_start - 1].strip():
            lines.insert(hashtag_start, '')

        return '\n'.join(lines)


# Initialize service
instagram_service = InstagramService()
