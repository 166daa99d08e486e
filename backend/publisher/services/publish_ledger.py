# backend/publisher/services/publish_ledger.py
"""
📒 SCHEDULED PUBLISHER - Publish Job Ledger
One row per (content, platform); upserted with the terminal outcome of each attempt.
"""

from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PublishJob, JobStatus, Platform, TERMINAL_JOB_STATUSES, utcnow

logger = logging.getLogger(__name__)


class PublishLedger:
    """Audit trail and retry bookkeeping for publish attempts"""

    async def get(self, db: AsyncSession, content_id: int, platform: Platform) -> Optional[PublishJob]:
        result = await db.execute(
            select(PublishJob).where(
                PublishJob.content_id == content_id,
                PublishJob.platform == platform,
            )
        )
        return result.scalar_one_or_none()

    async def record_outcome(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        platform: Platform,
        content_id: Optional[int],
        scheduled_at: Optional[datetime],
        success: bool,
        post_id: Optional[str] = None,
        error: Optional[str] = None,
        metadata: Optional[dict] = None,
        processed_by: str = "cron",
        source: Optional[str] = None,
    ) -> PublishJob:
        """Upsert the terminal outcome keyed by (content_id, platform)"""

        now = utcnow()
        job = None
        if content_id is not None:
            job = await self.get(db, content_id, platform)

        if job is None:
            job = PublishJob(
                content_id=content_id,
                user_id=user_id,
                platform=platform,
                attempts=0,
            )
            db.add(job)

        job.status = JobStatus.COMPLETED if success else JobStatus.FAILED
        job.scheduled_at = scheduled_at or job.scheduled_at or now
        job.completed_at = now
        job.attempts = (job.attempts or 0) + 1
        job.result = {'success': True, 'postId': post_id} if success else {'success': False, 'error': error}
        if metadata is not None:
            job.job_metadata = metadata
        job.processed_by = processed_by
        job.source = source

        await db.flush()
        return job

    async def list_jobs(
        self,
        db: AsyncSession,
        user_id: int,
        content_id: Optional[int] = None,
        limit: int = 10,
    ) -> List[PublishJob]:
        query = select(PublishJob).where(PublishJob.user_id == user_id)
        if content_id is not None:
            query = query.where(PublishJob.content_id == content_id)

        result = await db.execute(
            query.order_by(PublishJob.created_at.desc(), PublishJob.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def prune_terminal_jobs(self, db: AsyncSession, keep: int) -> int:
        """Delete terminal rows beyond the newest `keep`; pending/processing rows are never touched"""

        result = await db.execute(
            select(PublishJob.id)
            .where(PublishJob.status.in_(TERMINAL_JOB_STATUSES))
            .order_by(PublishJob.created_at.desc(), PublishJob.id.desc())
            .offset(keep)
        )
        stale_ids = list(result.scalars().all())
        if not stale_ids:
            return 0

        await db.execute(
            delete(PublishJob)
            .where(PublishJob.id.in_(stale_ids))
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        logger.info(f"🧹 Cleaned up {len(stale_ids)} old publish jobs")
        return len(stale_ids)


# Initialize ledger
publish_ledger = PublishLedger()
