# backend/tests/test_publish_ledger.py
"""
Test the publish job ledger: upsert, history and retention
"""

from datetime import timedelta

import pytest

from publisher.models import PublishJob, JobStatus, Platform, PrivacyStatus, utcnow
from publisher.schemas.publishing import (
    InstagramJobMetadata,
    YouTubeJobMetadata,
    job_metadata_adapter,
)
from publisher.services.publish_ledger import publish_ledger
from publisher.services.social_media.base import PublishItem, build_job_metadata


@pytest.fixture
def make_jobs(session_factory, user):
    async def _make(statuses):
        base = utcnow() - timedelta(days=1)
        async with session_factory() as db:
            for i, status in enumerate(statuses):
                db.add(PublishJob(
                    user_id=user.id,
                    platform=Platform.YOUTUBE,
                    status=status,
                    scheduled_at=base,
                    created_at=base + timedelta(minutes=i),
                    attempts=1,
                ))
            await db.commit()
    return _make


@pytest.mark.asyncio
async def test_outcome_upserts_per_content_and_platform(session_factory, make_content, user, jobs_for):
    content = await make_content()

    async with session_factory() as db:
        await publish_ledger.record_outcome(
            db, user_id=user.id, platform=Platform.YOUTUBE, content_id=content.id,
            scheduled_at=content.scheduled_at, success=False, error="quota exceeded",
        )
        await db.commit()

    async with session_factory() as db:
        await publish_ledger.record_outcome(
            db, user_id=user.id, platform=Platform.YOUTUBE, content_id=content.id,
            scheduled_at=content.scheduled_at, success=True, post_id="yt-1",
            processed_by="retry", source="api",
        )
        await db.commit()

    jobs = await jobs_for(content.id)
    assert len(jobs) == 1
    assert jobs[0].status == JobStatus.COMPLETED
    assert jobs[0].attempts == 2
    assert jobs[0].result == {'success': True, 'postId': "yt-1"}
    assert jobs[0].completed_at is not None
    assert jobs[0].processed_by == "retry"
    assert jobs[0].scheduled_at == content.scheduled_at


@pytest.mark.asyncio
async def test_outcomes_without_content_are_separate_rows(session_factory, user, jobs_for):
    async with session_factory() as db:
        for post_id in ("ig-1", "ig-2"):
            await publish_ledger.record_outcome(
                db, user_id=user.id, platform=Platform.INSTAGRAM, content_id=None,
                scheduled_at=None, success=True, post_id=post_id, processed_by="direct-api",
            )
        await db.commit()

    jobs = await jobs_for()
    assert [job.result['postId'] for job in jobs] == ["ig-1", "ig-2"]
    assert all(job.scheduled_at is not None for job in jobs)


@pytest.mark.asyncio
async def test_prune_keeps_newest_terminal_rows(session_factory, make_jobs, jobs_for):
    await make_jobs([
        JobStatus.COMPLETED,   # oldest
        JobStatus.PENDING,
        JobStatus.FAILED,
        JobStatus.PROCESSING,
        JobStatus.COMPLETED,
        JobStatus.FAILED,      # newest
    ])

    async with session_factory() as db:
        deleted = await publish_ledger.prune_terminal_jobs(db, keep=2)

    assert deleted == 2
    remaining = await jobs_for()
    assert [job.status for job in remaining] == [
        JobStatus.PENDING,
        JobStatus.PROCESSING,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
    ]


@pytest.mark.asyncio
async def test_prune_is_noop_under_limit(session_factory, make_jobs, jobs_for):
    await make_jobs([JobStatus.COMPLETED, JobStatus.FAILED])

    async with session_factory() as db:
        assert await publish_ledger.prune_terminal_jobs(db, keep=1000) == 0

    assert len(await jobs_for()) == 2


@pytest.mark.asyncio
async def test_list_jobs_newest_first_and_scoped(session_factory, make_jobs, make_content, user, other_user):
    await make_jobs([JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.COMPLETED])
    content = await make_content()

    async with session_factory() as db:
        await publish_ledger.record_outcome(
            db, user_id=user.id, platform=Platform.YOUTUBE, content_id=content.id,
            scheduled_at=content.scheduled_at, success=True, post_id="yt-9",
        )
        await db.commit()

    async with session_factory() as db:
        newest = await publish_ledger.list_jobs(db, user.id, limit=2)
        for_content = await publish_ledger.list_jobs(db, user.id, content_id=content.id)
        others = await publish_ledger.list_jobs(db, other_user.id)

    assert len(newest) == 2
    assert newest[0].content_id == content.id
    assert [job.content_id for job in for_content] == [content.id]
    assert others == []


def test_metadata_is_tagged_by_platform():
    reel = build_job_metadata(PublishItem(platform=Platform.INSTAGRAM, share_to_feed=False, thumb_offset=90))
    video = build_job_metadata(PublishItem(
        platform=Platform.YOUTUBE,
        title="Launch day",
        tags=["launch"],
        privacy_status=PrivacyStatus.UNLISTED.value,
    ))

    assert reel == {
        'platform': 'instagram',
        'mediaType': 'REELS',
        'isReel': True,
        'shareToFeed': False,
        'thumbOffset': 60,
    }
    assert video['platform'] == 'youtube'
    assert video['privacyStatus'] == 'unlisted'

    assert isinstance(job_metadata_adapter.validate_python(reel), InstagramJobMetadata)
    assert isinstance(job_metadata_adapter.validate_python(video), YouTubeJobMetadata)
