# backend/tests/test_dispatcher.py
"""
Test scheduled dispatch: selection, claiming, outcomes and batch isolation
"""

import asyncio
import time
from datetime import timedelta

import pytest

from publisher.config import settings
from publisher.models import (
    Content, SocialAccount, ContentStatus, ProcessingStage, Platform, JobStatus, utcnow,
)
from publisher.services.social_media.publishing_service import PublishingService
from publisher.services.social_media.youtube_service import YouTubeService


@pytest.mark.asyncio
async def test_youtube_item_is_published(publishing, make_account, make_content, load, jobs_for, youtube, storage):
    """Due YouTube content ends published with a completed job and its blobs removed"""

    await make_account(Platform.YOUTUBE)
    content = await make_content(thumbnail_key="uploads/thumb.jpg")

    result = await publishing.process_scheduled(source="cloudflare-worker")

    assert result['success'] is True
    assert result['processedCount'] == 1
    assert result['errorCount'] == 0
    assert result['totalFound'] == 1
    assert result['source'] == "cloudflare-worker"

    content = await load(Content, content.id)
    assert content.status == ContentStatus.PUBLISHED
    assert content.published_post_id == "yt-video-1"
    assert content.youtube_video_id == "yt-video-1"
    assert content.youtube_url == "https://www.youtube.com/watch?v=yt-video-1"
    assert content.published_at is not None
    assert content.processing_stage is None

    jobs = await jobs_for(content.id)
    assert len(jobs) == 1
    assert jobs[0].status == JobStatus.COMPLETED
    assert jobs[0].result == {'success': True, 'postId': "yt-video-1"}
    assert jobs[0].attempts == 1
    assert jobs[0].processed_by == "cron"
    assert jobs[0].source == "cloudflare-worker"
    assert jobs[0].job_metadata['platform'] == "youtube"
    assert jobs[0].job_metadata['title'] == "Morning routine"

    assert youtube.uploads[0]['thumbnail_bytes'] == b"bytes:uploads/thumb.jpg"
    assert storage.deleted == ["uploads/video.mp4", "uploads/thumb.jpg"]


@pytest.mark.asyncio
async def test_expired_token_with_failed_refresh(publishing, make_account, make_content, load, jobs_for, youtube, refresher):
    """Expired YouTube token whose refresh throws fails the item without uploading"""

    refresher.error = RuntimeError("invalid_grant")
    await make_account(Platform.YOUTUBE, token_expires_at=utcnow() - timedelta(minutes=5))
    content = await make_content()

    result = await publishing.process_scheduled()

    assert result['processedCount'] == 0
    assert result['errorCount'] == 1

    content = await load(Content, content.id)
    assert content.status == ContentStatus.FAILED
    assert content.error == "YouTube token expired and refresh failed"

    jobs = await jobs_for(content.id)
    assert len(jobs) == 1
    assert jobs[0].status == JobStatus.FAILED
    assert jobs[0].result == {'success': False, 'error': "YouTube token expired and refresh failed"}
    assert youtube.uploads == []
    assert refresher.calls == 1


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_before_upload(publishing, make_account, make_content, load, youtube, refresher):
    account = await make_account(Platform.YOUTUBE, token_expires_at=utcnow() - timedelta(minutes=5))
    content = await make_content()

    result = await publishing.process_scheduled()

    assert result['processedCount'] == 1
    assert refresher.calls == 1
    assert (await load(Content, content.id)).status == ContentStatus.PUBLISHED

    account = await load(SocialAccount, account.id)
    assert account.access_token == "fresh-access-token"
    assert account.token_version == 1
    assert account.token_expires_at > utcnow()


@pytest.mark.asyncio
async def test_instagram_item_waits_for_container(publishing, make_account, make_content, load, jobs_for, instagram):
    """Instagram dispatch only creates the container; the poller finishes it"""

    await make_account(Platform.INSTAGRAM)
    content = await make_content(platform=Platform.INSTAGRAM, title=None, thumb_offset=12)

    result = await publishing.process_scheduled()

    assert result['processedCount'] == 1
    assert result['errorCount'] == 0

    content = await load(Content, content.id)
    assert content.status == ContentStatus.PROCESSING
    assert content.processing_stage == ProcessingStage.AWAITING_CONTAINER
    assert content.instagram_creation_id == "container-1"
    assert content.container_created_at is not None
    assert content.next_poll_at > content.container_created_at
    assert content.poll_attempts == 0

    assert await jobs_for(content.id) == []
    assert instagram.published[0].thumb_offset == 12


@pytest.mark.asyncio
async def test_failing_item_does_not_abort_batch(publishing, make_account, make_content, load, youtube):
    """Three due items, the second blows up: the others still finish"""

    await make_account(Platform.YOUTUBE)
    now = utcnow()
    first = await make_content(title="First", media_key="uploads/1.mp4", scheduled_at=now - timedelta(minutes=3))
    second = await make_content(title="Second", media_key="uploads/2.mp4", scheduled_at=now - timedelta(minutes=2))
    third = await make_content(title="Third", media_key="uploads/3.mp4", scheduled_at=now - timedelta(minutes=1))
    youtube.fail_titles["Second"] = RuntimeError("Upload exploded")

    result = await publishing.process_scheduled(as_of=now)

    assert result['processedCount'] == 2
    assert result['errorCount'] == 1
    assert result['totalFound'] == 3

    assert (await load(Content, first.id)).status == ContentStatus.PUBLISHED
    failed = await load(Content, second.id)
    assert failed.status == ContentStatus.FAILED
    assert failed.error == "Upload exploded"
    assert (await load(Content, third.id)).status == ContentStatus.PUBLISHED


@pytest.mark.asyncio
async def test_second_run_does_not_republish(publishing, make_account, make_content, youtube, jobs_for):
    await make_account(Platform.YOUTUBE)
    content = await make_content()
    as_of = utcnow()

    first = await publishing.process_scheduled(as_of=as_of)
    second = await publishing.process_scheduled(as_of=as_of)

    assert first['processedCount'] == 1
    assert second['totalFound'] == 0
    assert second['processedCount'] == 0
    assert len(youtube.uploads) == 1
    assert len(await jobs_for(content.id)) == 1


@pytest.mark.asyncio
async def test_selection_respects_lookahead_and_status(publishing, make_account, make_content, load):
    await make_account(Platform.YOUTUBE)
    now = utcnow()
    soon = await make_content(scheduled_at=now + timedelta(seconds=30))
    later = await make_content(scheduled_at=now + timedelta(minutes=5))
    draft = await make_content(status=ContentStatus.DRAFT)
    unscheduled = await make_content(scheduled_at=None)

    result = await publishing.process_scheduled(as_of=now)

    assert result['totalFound'] == 1
    assert (await load(Content, soon.id)).status == ContentStatus.PUBLISHED
    assert (await load(Content, later.id)).status == ContentStatus.SCHEDULED
    assert (await load(Content, draft.id)).status == ContentStatus.DRAFT
    assert (await load(Content, unscheduled.id)).status == ContentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_claim_only_succeeds_once(publishing, make_content, session_factory):
    content = await make_content()

    async with session_factory() as db:
        assert await publishing._claim(db, content.id, ContentStatus.SCHEDULED) is True
    async with session_factory() as db:
        assert await publishing._claim(db, content.id, ContentStatus.SCHEDULED) is False


@pytest.mark.asyncio
async def test_missing_account_fails_item(publishing, make_content, load, jobs_for):
    content = await make_content()

    result = await publishing.process_scheduled()

    assert result['errorCount'] == 1
    content = await load(Content, content.id)
    assert content.status == ContentStatus.FAILED
    assert content.error == "YouTube account not connected"
    assert (await jobs_for(content.id))[0].status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_slow_adapter_is_cut_off(publishing, make_account, make_content, load, instagram, monkeypatch):
    monkeypatch.setattr(settings, "PUBLISH_TIMEOUT_SECONDS", 0.05)
    await make_account(Platform.INSTAGRAM)
    content = await make_content(platform=Platform.INSTAGRAM)

    async def slow_publish(account, item):
        await asyncio.sleep(5)

    instagram.publish = slow_publish

    result = await publishing.process_scheduled()

    assert result['errorCount'] == 1
    content = await load(Content, content.id)
    assert content.status == ContentStatus.FAILED
    assert content.error == "Platform request timed out"


@pytest.mark.asyncio
async def test_youtube_upload_outlasting_publish_timeout_is_not_failed(
    session_factory, credential_store, instagram, storage, make_account, make_content, load, jobs_for, monkeypatch
):
    """The upload thread cannot be cancelled, so its result is what gets recorded"""

    monkeypatch.setattr(settings, "PUBLISH_TIMEOUT_SECONDS", 0.05)
    await make_account(Platform.YOUTUBE)
    content = await make_content()

    youtube = YouTubeService(storage=storage)
    uploaded = []

    def slow_resumable_upload(credentials, body, path):
        time.sleep(0.3)
        uploaded.append(body['snippet']['title'])
        return {'id': 'vid-1', 'snippet': body['snippet'], 'status': body['status']}

    youtube._execute_resumable_upload = slow_resumable_upload
    publishing = PublishingService(
        session_factory=session_factory,
        services={Platform.YOUTUBE: youtube, Platform.INSTAGRAM: instagram},
        credential_store=credential_store,
    )

    result = await publishing.process_scheduled()

    assert result['processedCount'] == 1
    assert result['errorCount'] == 0
    assert uploaded == ["Morning routine"]

    content = await load(Content, content.id)
    assert content.status == ContentStatus.PUBLISHED
    assert content.youtube_video_id == "vid-1"
    assert storage.deleted == ["uploads/video.mp4"]
    assert (await jobs_for(content.id))[0].status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_change_result(publishing, make_account, make_content):
    await make_account(Platform.YOUTUBE)
    await make_content()

    class BrokenLedger(type(publishing.ledger)):
        async def prune_terminal_jobs(self, db, keep):
            raise RuntimeError("disk full")

    publishing.ledger = BrokenLedger()

    result = await publishing.process_scheduled()

    assert result['success'] is True
    assert result['processedCount'] == 1
