# backend/publisher/services/social_media/youtube_service.py
"""
📺 YouTube Service - YouTube Video Publishing
Resumable upload through the Data API; synchronous from the dispatcher's view.
"""

import os
import asyncio
import tempfile
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
import logging

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google_auth_httplib2 import AuthorizedHttp
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload
import aiofiles
import httplib2

from ...config import settings
from ...exceptions import CredentialError, PublishError, StorageCleanupError, ValidationError
from ...models import SocialAccount, Platform
from ..file_storage import storage_service
from .base import PublishItem, PublishedRef

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

TITLE_LIMIT = 100
FALLBACK_TITLE_LENGTH = 60


def resolve_title(title: Optional[str], caption: Optional[str], description: Optional[str]) -> str:
    """Explicit title, else the start of the caption/description, else a placeholder"""
    title = (title or '').strip()
    if not title:
        fallback = (caption or description or '').strip()
        title = fallback[:FALLBACK_TITLE_LENGTH].replace('\n', ' ').strip()
    return (title or 'Untitled Video')[:TITLE_LIMIT]


def resolve_description(description: Optional[str], caption: Optional[str]) -> str:
    description = (description or caption or '').strip()
    return description or 'No description provided'


class YouTubeService:
    """Service for YouTube API interactions"""

    platform = Platform.YOUTUBE

    # Bounded per request by the HTTP transport; callers must not cancel publish() mid-upload
    publish_timeout = None

    def __init__(self, storage=None, timeout: Optional[float] = None):
        self.client_id = settings.YOUTUBE_CLIENT_ID
        self.client_secret = settings.YOUTUBE_CLIENT_SECRET
        self.storage = storage or storage_service
        self.timeout = timeout or settings.PLATFORM_HTTP_TIMEOUT_SECONDS

    # ========================================================================
    # PUBLISH
    # ========================================================================

    async def publish(self, account: SocialAccount, item: PublishItem) -> PublishedRef:
        """Fetch media from storage, upload it, then drop the temporary blobs"""

        media_key = item.media_key
        if not media_key and item.media_url:
            media_key = self.storage.key_from_url(item.media_url)
        if not media_key:
            raise ValidationError("Missing required field: mediaKey (media file)")

        video_bytes = await self.storage.fetch(media_key)

        thumbnail_bytes = None
        if item.thumbnail_key:
            try:
                thumbnail_bytes = await self.storage.fetch(item.thumbnail_key)
            except Exception as e:
                logger.warning(f"Failed to get thumbnail {item.thumbnail_key} from storage: {e}")

        response = await self.upload_video(
            account,
            title=resolve_title(item.title, item.caption, item.description),
            description=resolve_description(item.description, item.caption),
            tags=item.tags,
            category_id=item.category_id or settings.YOUTUBE_DEFAULT_CATEGORY_ID,
            privacy_status=item.privacy_status,
            video_bytes=video_bytes,
            thumbnail_bytes=thumbnail_bytes,
        )

        video_id = response['id']
        await self._cleanup_storage(media_key, item.thumbnail_key)

        return PublishedRef(
            post_id=video_id,
            url=WATCH_URL.format(video_id=video_id),
            response={
                'videoId': video_id,
                'title': response.get('snippet', {}).get('title'),
                'publishedAt': response.get('snippet', {}).get('publishedAt'),
                'privacyStatus': response.get('status', {}).get('privacyStatus'),
            },
        )

    # ========================================================================
    # VIDEO UPLOAD
    # ========================================================================

    async def upload_video(
        self,
        account: SocialAccount,
        title: str,
        description: str,
        tags: List[str],
        category_id: str = "22",  # People & Blogs
        privacy_status: str = "public",
        video_bytes: bytes = b"",
        thumbnail_bytes: Optional[bytes] = None,
    ) -> Dict[str, Any]:
        """Upload video and return the API's {id, snippet, status}"""

        credentials = self._credentials(account)
        temp_video_path = await self._write_temp(video_bytes, '.mp4')

        try:
            body = {
                'snippet': {
                    'title': title,
                    'description': description,
                    'tags': tags[:500],
                    'categoryId': category_id,
                },
                'status': {
                    'privacyStatus': privacy_status,
                    'selfDeclaredMadeForKids': False,
                },
            }

            response = await asyncio.to_thread(
                self._execute_resumable_upload, credentials, body, temp_video_path
            )
            video_id = response['id']
            logger.info(f"✅ YouTube upload finished: {video_id}")

            if thumbnail_bytes:
                await self._upload_thumbnail(credentials, video_id, thumbnail_bytes)

            return response

        except HttpError as e:
            logger.error(f"YouTube API error: {e}")
            status = getattr(e.resp, 'status', 0) or 0
            raise PublishError(
                f"Failed to upload video: {e}",
                platform=self.platform.value,
                details={"status": status},
                retryable=status >= 500,
            )
        finally:
            if os.path.exists(temp_video_path):
                os.remove(temp_video_path)

    # ========================================================================
    # TOKENS
    # ========================================================================

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange a refresh token; returns {access_token, expires_in}"""

        if not refresh_token:
            raise CredentialError("YouTube token expired and refresh failed")

        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )

        try:
            await asyncio.wait_for(
                asyncio.to_thread(creds.refresh, Request()),
                timeout=self.timeout,
            )
        except (RefreshError, asyncio.TimeoutError) as e:
            logger.error(f"YouTube token refresh failed: {e}")
            raise CredentialError("YouTube token expired and refresh failed")

        expires_in = 3600
        if creds.expiry:
            expiry = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry.tzinfo is None else creds.expiry
            expires_in = int((expiry - datetime.now(timezone.utc)).total_seconds())

        return {'access_token': creds.token, 'expires_in': expires_in}

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def _credentials(self, account: SocialAccount) -> Credentials:
        return Credentials(
            token=account.access_token,
            refresh_token=account.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )

    def _authorized_http(self, credentials: Credentials) -> AuthorizedHttp:
        return AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout))

    def _execute_resumable_upload(self, credentials: Credentials, body: Dict[str, Any], path: str) -> Dict[str, Any]:
        youtube = build('youtube', 'v3', http=self._authorized_http(credentials), cache_discovery=False)

        media = MediaFileUpload(
            path,
            mimetype='video/*',
            resumable=True,
            chunksize=1024 * 1024 * 8,
        )

        request = youtube.videos().insert(
            part=','.join(body.keys()),
            body=body,
            media_body=media,
        )

        response = None
        while response is None:
            status, response = request.next_chunk(num_retries=3)
            if status:
                logger.info(f"Upload progress: {int(status.progress() * 100)}%")

        return response

    async def _upload_thumbnail(self, credentials: Credentials, video_id: str, thumbnail_bytes: bytes):
        """Thumbnail failures never fail the upload"""

        temp_thumbnail = await self._write_temp(thumbnail_bytes, '.jpg')

        def _set_thumbnail():
            youtube = build('youtube', 'v3', http=self._authorized_http(credentials), cache_discovery=False)
            media = MediaFileUpload(temp_thumbnail, mimetype='image/jpeg')
            youtube.thumbnails().set(videoId=video_id, media_body=media).execute()

        try:
            await asyncio.to_thread(_set_thumbnail)
        except Exception as e:
            logger.warning(f"Failed to upload thumbnail for {video_id}: {e}")
        finally:
            if os.path.exists(temp_thumbnail):
                os.remove(temp_thumbnail)

    async def _write_temp(self, data: bytes, suffix: str) -> str:
        fd, path = tempfile.mkstemp(suffix=suffix)
        os.close(fd)
        async with aiofiles.open(path, 'wb') as f:
            await f.write(data)
        return path

    async def _cleanup_storage(self, *keys: Optional[str]):
        for key in keys:
            if not key:
                continue
            try:
                await self.storage.delete(key)
                logger.info(f"🗑️ Removed temporary media {key}")
            except StorageCleanupError as e:
                logger.warning(f"Failed to clean up storage: {e.message}")


# Initialize service
youtube_service = YouTubeService()
