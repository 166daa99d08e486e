# backend/publisher/services/social_media/publishing_service.py
"""
📤 Publishing Service - Scheduled Content Dispatcher
Claims due content, drives the platform adapters and records every outcome.
"""

from typing import Dict, Any, Optional
from datetime import datetime, timedelta
from time import monotonic
import logging
import asyncio

from sqlalchemy import select, update

from ...config import settings
from ...database import AsyncSessionLocal
from ...exceptions import (
    CredentialError, InvalidStateError, AuthorizationError, NotFoundError,
    PublishError, ValidationError, error_from_exception,
)
from ...models import Content, ContentStatus, ProcessingStage, Platform, utcnow
from ...schemas.publishing import DirectPublishRequest
from ..credentials import CredentialStore
from ..publish_ledger import publish_ledger
from .base import (
    PublishItem, PublishedRef, AsyncHandle, ContainerStatus, PublishOutcome, build_job_metadata,
)
from .instagram_service import instagram_service
from .youtube_service import youtube_service

logger = logging.getLogger(__name__)

INSTAGRAM_TIMEOUT_MESSAGE = "Instagram processing timeout"

# Poll outcomes
POLL_COMPLETED = "completed"
POLL_PROCESSING = "processing"
POLL_FAILED = "failed"
POLL_SKIPPED = "skipped"


def poll_backoff_seconds(attempts: int) -> int:
    """Delay before the next container check, doubling per attempt up to the cap"""
    delay = settings.INSTAGRAM_POLL_INTERVAL_SECONDS * (2 ** max(0, attempts))
    return min(delay, settings.INSTAGRAM_POLL_MAX_INTERVAL_SECONDS)


class PublishingService:
    """Unified service for publishing scheduled content to all platforms"""

    def __init__(
        self,
        session_factory=None,
        services: Optional[Dict[Platform, Any]] = None,
        credential_store: Optional[CredentialStore] = None,
        ledger=None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.services = services or {
            Platform.YOUTUBE: youtube_service,
            Platform.INSTAGRAM: instagram_service,
        }
        if credential_store is None:
            refreshers = {}
            if Platform.YOUTUBE in self.services:
                refreshers[Platform.YOUTUBE] = self.services[Platform.YOUTUBE].refresh_token
            credential_store = CredentialStore(refreshers=refreshers)
        self.credentials = credential_store
        self.ledger = ledger or publish_ledger

    # ========================================================================
    # SCHEDULED DISPATCH
    # ========================================================================

    async def process_scheduled(self, as_of: Optional[datetime] = None, source: str = "cron") -> Dict[str, Any]:
        """Publish every due scheduled item, one at a time"""

        as_of = as_of or utcnow()
        cutoff = as_of + timedelta(seconds=settings.SCHEDULE_LOOKAHEAD_SECONDS)

        async with self.session_factory() as db:
            result = await db.execute(
                select(Content.id)
                .where(
                    Content.status == ContentStatus.SCHEDULED,
                    Content.scheduled_at.isnot(None),
                    Content.scheduled_at <= cutoff,
                )
                .order_by(Content.scheduled_at, Content.id)
                .limit(settings.SCHEDULE_BATCH_SIZE)
            )
            due_ids = list(result.scalars().all())

        logger.info(f"📅 Found {len(due_ids)} scheduled items due by {cutoff.isoformat()} (source={source})")

        processed_count = 0
        error_count = 0

        for content_id in due_ids:
            async with self.session_factory() as db:
                if not await self._claim(db, content_id, ContentStatus.SCHEDULED):
                    logger.info(f"Content {content_id} already claimed by another run, skipping")
                    continue

                outcome = await self._publish_claimed(db, content_id, processed_by="cron", source=source)

            if outcome['success']:
                processed_count += 1
            else:
                error_count += 1

        await self._cleanup()

        logger.info(
            f"✅ Scheduled run finished: {processed_count} processed, {error_count} failed, "
            f"{len(due_ids)} found"
        )

        return {
            'success': True,
            'processedCount': processed_count,
            'errorCount': error_count,
            'totalFound': len(due_ids),
            'processedAt': utcnow().isoformat(),
            'source': source,
        }

    # ========================================================================
    # INSTAGRAM CONTAINER POLLER
    # ========================================================================

    async def poll_instagram_containers(self, as_of: Optional[datetime] = None, source: str = "cron") -> Dict[str, Any]:
        """Finalize Instagram containers that are due for a status check"""

        as_of = as_of or utcnow()

        async with self.session_factory() as db:
            result = await db.execute(
                select(Content.id)
                .where(
                    Content.status == ContentStatus.PROCESSING,
                    Content.processing_stage == ProcessingStage.AWAITING_CONTAINER,
                    Content.instagram_creation_id.isnot(None),
                    Content.next_poll_at <= as_of,
                )
                .order_by(Content.next_poll_at, Content.id)
                .limit(settings.INSTAGRAM_POLL_BATCH_SIZE)
            )
            pending_ids = list(result.scalars().all())

        counts = {POLL_COMPLETED: 0, POLL_PROCESSING: 0, POLL_FAILED: 0, POLL_SKIPPED: 0}

        for content_id in pending_ids:
            async with self.session_factory() as db:
                outcome = await self._poll_container(db, content_id, as_of, source)
            counts[outcome] += 1

        logger.info(
            f"📸 Instagram poll: {counts[POLL_COMPLETED]} published, {counts[POLL_PROCESSING]} still processing, "
            f"{counts[POLL_FAILED]} failed"
        )

        return {
            'success': True,
            'completedCount': counts[POLL_COMPLETED],
            'stillProcessingCount': counts[POLL_PROCESSING],
            'failedCount': counts[POLL_FAILED],
            'totalPolled': len(pending_ids),
            'processedAt': utcnow().isoformat(),
            'source': source,
        }

    async def _poll_container(self, db, content_id: int, as_of: datetime, source: str) -> str:
        content = await db.get(Content, content_id)
        if content is None or content.processing_stage != ProcessingStage.AWAITING_CONTAINER:
            return POLL_SKIPPED

        attempts = content.poll_attempts or 0
        result = await db.execute(
            update(Content)
            .where(
                Content.id == content_id,
                Content.status == ContentStatus.PROCESSING,
                Content.processing_stage == ProcessingStage.AWAITING_CONTAINER,
                Content.poll_attempts == attempts,
            )
            .values(
                poll_attempts=attempts + 1,
                next_poll_at=as_of + timedelta(seconds=poll_backoff_seconds(attempts + 1)),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount != 1:
            return POLL_SKIPPED

        await db.refresh(content)
        item = PublishItem.from_content(content)
        metadata = build_job_metadata(item)

        try:
            account = await self.credentials.refresh_if_expired(db, content.user_id, Platform.INSTAGRAM)
            status = await asyncio.wait_for(
                self.services[Platform.INSTAGRAM].check_and_publish_container(
                    account, content.instagram_creation_id
                ),
                timeout=settings.PUBLISH_TIMEOUT_SECONDS,
            )
        except Exception as e:
            await db.rollback()
            error = error_from_exception(e)
            if not error.retryable:
                logger.error(f"💥 Instagram container check failed for content {content_id}: {error.message}")
                await self._mark_failed(db, content, error.message, metadata, "poller", source)
                return POLL_FAILED
            logger.warning(f"Instagram container check for content {content_id} will be retried: {error.message}")
            await db.refresh(content)
            status = ContainerStatus(ContainerStatus.PROCESSING)

        if status.status == ContainerStatus.PUBLISHED:
            ref = PublishedRef(post_id=status.media_id)
            await self._mark_published(db, content, ref, metadata, "poller", source)
            return POLL_COMPLETED

        if status.status == ContainerStatus.FAILED:
            await self._mark_failed(db, content, status.error or "Media processing failed", metadata, "poller", source)
            return POLL_FAILED

        if self._poll_budget_exhausted(content, as_of):
            logger.warning(f"⏰ Instagram container {content.instagram_creation_id} exceeded poll budget")
            await self._mark_failed(db, content, INSTAGRAM_TIMEOUT_MESSAGE, metadata, "poller", source)
            return POLL_FAILED

        return POLL_PROCESSING

    def _poll_budget_exhausted(self, content: Content, as_of: datetime) -> bool:
        if (content.poll_attempts or 0) >= settings.INSTAGRAM_POLL_MAX_ATTEMPTS:
            return True
        started = content.container_created_at
        if started is None:
            return False
        return (as_of - started).total_seconds() >= settings.INSTAGRAM_POLL_TIMEOUT_SECONDS

    # ========================================================================
    # RETRY
    # ========================================================================

    async def retry_content(self, content_id: int, user_id: int, source: str = "api") -> Dict[str, Any]:
        """Re-drive one failed item through the dispatcher's publish path"""

        async with self.session_factory() as db:
            content = await db.get(Content, content_id)
            if content is None:
                raise NotFoundError("Content not found")
            if content.user_id != user_id:
                raise AuthorizationError("Not authorized to retry this content")
            if content.status == ContentStatus.PUBLISHED:
                raise InvalidStateError("Content is already published")
            if content.status != ContentStatus.FAILED:
                raise InvalidStateError(
                    f"Only failed content can be retried (current status: {ContentStatus(content.status).value})"
                )

            if not await self._claim(db, content_id, ContentStatus.FAILED):
                raise InvalidStateError("Content is already being retried")

            logger.info(f"🔁 Retrying content {content_id} for user {user_id}")
            return await self._publish_claimed(db, content_id, processed_by="retry", source=source)

    # ========================================================================
    # DIRECT PUBLISH
    # ========================================================================

    async def publish_direct(
        self,
        user_id: int,
        platform: Platform,
        request: DirectPublishRequest,
        source: str = "direct-api",
    ) -> Dict[str, Any]:
        """Publish now, either an existing content item or raw fields"""

        platform = Platform(platform)

        if request.content_id is not None:
            return await self._publish_existing(user_id, platform, request.content_id, source)

        item = PublishItem(
            platform=platform,
            caption=request.caption or "",
            title=request.title,
            description=request.description,
            tags=list(request.tags or []),
            category_id=request.category_id,
            privacy_status=request.privacy_status.value,
            media_url=request.media_url,
            media_key=request.media_key,
            thumbnail_key=request.thumbnail_key,
            share_to_feed=request.share_to_feed,
            thumb_offset=request.thumb_offset,
        )
        self._validate_item(item)
        metadata = build_job_metadata(item)

        async with self.session_factory() as db:
            try:
                account = await self.credentials.refresh_if_expired(db, user_id, platform)
                outcome = await self._run_publish(self._service_for(platform), account, item)
                if isinstance(outcome, AsyncHandle):
                    outcome = await self._wait_for_container(account, outcome.container_id)
            except Exception as e:
                await db.rollback()
                error = error_from_exception(e)
                logger.error(f"💥 Direct {platform.value} publish failed for user {user_id}: {error.message}")
                await self.ledger.record_outcome(
                    db,
                    user_id=user_id,
                    platform=platform,
                    content_id=None,
                    scheduled_at=utcnow(),
                    success=False,
                    error=error.message,
                    metadata=metadata,
                    processed_by="direct-api",
                    source=source,
                )
                await db.commit()
                return {'success': False, 'status': ContentStatus.FAILED.value, 'error': error.message}

            await self.ledger.record_outcome(
                db,
                user_id=user_id,
                platform=platform,
                content_id=None,
                scheduled_at=utcnow(),
                success=True,
                post_id=outcome.post_id,
                metadata=metadata,
                processed_by="direct-api",
                source=source,
            )
            await db.commit()

        logger.info(f"✅ Direct {platform.value} publish succeeded: {outcome.post_id}")
        return {
            'success': True,
            'status': ContentStatus.PUBLISHED.value,
            'publishedPostId': outcome.post_id,
            'url': outcome.url,
        }

    async def _publish_existing(self, user_id: int, platform: Platform, content_id: int, source: str) -> Dict[str, Any]:
        async with self.session_factory() as db:
            content = await db.get(Content, content_id)
            if content is None:
                raise NotFoundError("Content not found")
            if content.user_id != user_id:
                raise AuthorizationError("Not authorized to publish this content")
            if Platform(content.platform) != platform:
                raise ValidationError(
                    f"Content {content_id} targets {Platform(content.platform).value}, not {platform.value}"
                )

            current = ContentStatus(content.status)
            if current == ContentStatus.PUBLISHED:
                raise InvalidStateError("Content is already published")
            if current == ContentStatus.PROCESSING:
                raise InvalidStateError("Content is already being published")

            self._validate_item(PublishItem.from_content(content))

            if not await self._claim(db, content_id, current):
                raise InvalidStateError("Content is already being published")

            return await self._publish_claimed(db, content_id, processed_by="direct-api", source=source)

    async def _wait_for_container(self, account, container_id: str) -> PublishedRef:
        """Inline polling for direct publishes that have no content row to track"""

        service = self._service_for(Platform.INSTAGRAM)
        deadline = monotonic() + settings.INSTAGRAM_POLL_TIMEOUT_SECONDS

        for attempt in range(settings.INSTAGRAM_POLL_MAX_ATTEMPTS):
            try:
                status = await service.check_and_publish_container(account, container_id)
            except PublishError as e:
                if not e.retryable:
                    raise
                logger.warning(f"Instagram container {container_id} check will be retried: {e.message}")
                status = ContainerStatus(ContainerStatus.PROCESSING)

            if status.status == ContainerStatus.PUBLISHED:
                return PublishedRef(post_id=status.media_id)
            if status.status == ContainerStatus.FAILED:
                raise PublishError(status.error or "Media processing failed", platform=Platform.INSTAGRAM.value)

            remaining = deadline - monotonic()
            if attempt + 1 >= settings.INSTAGRAM_POLL_MAX_ATTEMPTS or remaining <= 0:
                break
            await asyncio.sleep(min(poll_backoff_seconds(attempt), remaining))

        logger.warning(f"⏰ Instagram container {container_id} exceeded poll budget")
        raise PublishError(INSTAGRAM_TIMEOUT_MESSAGE, platform=Platform.INSTAGRAM.value)

    # ========================================================================
    # INSTAGRAM TOKEN MAINTENANCE
    # ========================================================================

    async def refresh_instagram_tokens(self) -> Dict[str, Any]:
        async with self.session_factory() as db:
            summary = await self.credentials.refresh_expiring_instagram_tokens(
                db, self._service_for(Platform.INSTAGRAM)
            )

        logger.info(f"🔄 Instagram token refresh: {summary['refreshed']} refreshed, {summary['failed']} failed")
        return {'success': True, **summary}

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def _service_for(self, platform: Platform):
        service = self.services.get(platform)
        if service is None:
            raise CredentialError(f"Unsupported platform: {platform}")
        return service

    async def _run_publish(self, service, account, item: PublishItem) -> PublishOutcome:
        """Adapter call under PUBLISH_TIMEOUT_SECONDS unless the adapter bounds itself"""

        timeout = getattr(service, 'publish_timeout', settings.PUBLISH_TIMEOUT_SECONDS)
        if timeout is None:
            return await service.publish(account, item)
        return await asyncio.wait_for(service.publish(account, item), timeout=timeout)

    def _validate_item(self, item: PublishItem):
        if item.platform == Platform.INSTAGRAM and not item.media_url:
            raise ValidationError("Missing required field: mediaUrl")
        if item.platform == Platform.YOUTUBE and not (item.media_key or item.media_url):
            raise ValidationError("Missing required field: mediaKey (media file)")

    async def _claim(self, db, content_id: int, from_status: ContentStatus) -> bool:
        """Conditional status flip; False means someone else got there first"""

        result = await db.execute(
            update(Content)
            .where(Content.id == content_id, Content.status == from_status)
            .values(
                status=ContentStatus.PROCESSING,
                processing_stage=ProcessingStage.PUBLISHING,
                error=None,
                instagram_creation_id=None,
                poll_attempts=0,
                next_poll_at=None,
                container_created_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount == 1

    async def _publish_claimed(self, db, content_id: int, processed_by: str, source: str) -> Dict[str, Any]:
        """Credentials, adapter call and outcome for one claimed item; never raises for item errors"""

        content = await db.get(Content, content_id, populate_existing=True)
        if content is None:
            logger.warning(f"Content {content_id} disappeared after it was claimed")
            return {'success': False, 'status': ContentStatus.FAILED.value, 'error': "Content not found"}
        metadata = None

        try:
            item = PublishItem.from_content(content)
            metadata = build_job_metadata(item)
            account = await self.credentials.refresh_if_expired(db, content.user_id, item.platform)
            service = self._service_for(item.platform)

            logger.info(f"📤 Publishing content {content_id} to {item.platform.value}")
            outcome = await self._run_publish(service, account, item)
        except Exception as e:
            await db.rollback()
            error = error_from_exception(e)
            logger.error(f"💥 Publishing content {content_id} failed: {error.message}")
            return await self._mark_failed(db, content, error.message, metadata, processed_by, source)

        if isinstance(outcome, AsyncHandle):
            return await self._await_container(db, content, outcome)

        return await self._mark_published(db, content, outcome, metadata, processed_by, source)

    async def _await_container(self, db, content: Content, handle: AsyncHandle) -> Dict[str, Any]:
        now = utcnow()
        content.instagram_creation_id = handle.container_id
        content.processing_stage = ProcessingStage.AWAITING_CONTAINER
        content.container_created_at = now
        content.poll_attempts = 0
        content.next_poll_at = now + timedelta(seconds=settings.INSTAGRAM_POLL_INTERVAL_SECONDS)
        await db.commit()

        logger.info(f"⏳ Content {content.id} waiting on Instagram container {handle.container_id}")
        return {
            'success': True,
            'status': ContentStatus.PROCESSING.value,
            'containerId': handle.container_id,
        }

    async def _mark_published(
        self,
        db,
        content: Content,
        ref: PublishedRef,
        metadata: Optional[dict],
        processed_by: str,
        source: str,
    ) -> Dict[str, Any]:
        content.status = ContentStatus.PUBLISHED
        content.processing_stage = None
        content.published_at = utcnow()
        content.published_post_id = ref.post_id
        content.next_poll_at = None
        content.error = None

        if Platform(content.platform) == Platform.YOUTUBE:
            content.youtube_video_id = ref.post_id
            content.youtube_url = ref.url
        else:
            content.instagram_media_id = ref.post_id

        await self.ledger.record_outcome(
            db,
            user_id=content.user_id,
            platform=Platform(content.platform),
            content_id=content.id,
            scheduled_at=content.scheduled_at,
            success=True,
            post_id=ref.post_id,
            metadata=metadata,
            processed_by=processed_by,
            source=source,
        )
        await db.commit()

        logger.info(f"✅ Content {content.id} published: {ref.post_id}")
        return {
            'success': True,
            'status': ContentStatus.PUBLISHED.value,
            'publishedPostId': ref.post_id,
            'url': ref.url,
        }

    async def _mark_failed(
        self,
        db,
        content: Content,
        message: str,
        metadata: Optional[dict],
        processed_by: str,
        source: str,
    ) -> Dict[str, Any]:
        await db.refresh(content)
        content.status = ContentStatus.FAILED
        content.processing_stage = None
        content.next_poll_at = None
        content.error = message

        await self.ledger.record_outcome(
            db,
            user_id=content.user_id,
            platform=Platform(content.platform),
            content_id=content.id,
            scheduled_at=content.scheduled_at,
            success=False,
            error=message,
            metadata=metadata,
            processed_by=processed_by,
            source=source,
        )
        await db.commit()

        return {'success': False, 'status': ContentStatus.FAILED.value, 'error': message}

    async def _cleanup(self):
        """Bound the ledger; failures never change the run's result"""

        try:
            async with self.session_factory() as db:
                await self.ledger.prune_terminal_jobs(db, keep=settings.PUBLISH_JOB_RETENTION)
        except Exception as e:
            logger.error(f"Failed to clean up publish jobs: {e}")


# Initialize service
publishing_service = PublishingService()
