# backend/tests/conftest.py
"""
Shared fixtures: in-memory SQLite, fake platform adapters and storage
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from publisher.database import Base, build_engine
from publisher.exceptions import StorageError
from publisher.models import (
    User, SocialAccount, Content, PublishJob, Platform, ContentStatus, utcnow,
)
from publisher.services.credentials import CredentialStore
from publisher.services.social_media.base import AsyncHandle, ContainerStatus
from publisher.services.social_media.publishing_service import PublishingService
from publisher.services.social_media.youtube_service import YouTubeService

# ============================================================================
# FAKES
# ============================================================================

class FakeStorage:
    """Any key fetches unless listed in `missing`; deletes are recorded"""

    def __init__(self):
        self.missing = set()
        self.deleted = []

    async def fetch(self, key):
        if key in self.missing:
            raise StorageError("Video file not found in storage", details={"key": key})
        return f"bytes:{key}".encode()

    async def delete(self, key):
        self.deleted.append(key)

    def is_storage_url(self, url):
        return url.startswith("https://media.example.com/")

    def key_from_url(self, url):
        return url.replace("https://media.example.com/", "", 1).split("?", 1)[0]

    def generate_presigned_url(self, key, expiration=None):
        return f"https://signed.example.com/{key}?sig=abc"


class FakeInstagramService:
    platform = Platform.INSTAGRAM

    def __init__(self):
        self.published = []
        self.checks = []
        self.next_status = ContainerStatus(ContainerStatus.PROCESSING)
        self.check_error = None
        self.refresh_results = {}

    async def publish(self, account, item):
        self.published.append(item)
        return AsyncHandle(container_id=f"container-{len(self.published)}")

    async def check_and_publish_container(self, account, container_id):
        self.checks.append(container_id)
        if self.check_error is not None:
            raise self.check_error
        return self.next_status

    async def refresh_long_lived_token(self, access_token):
        outcome = self.refresh_results.get(access_token)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or {'access_token': f"{access_token}-refreshed", 'expires_in': 60 * 24 * 3600}


class FakeRefresher:
    def __init__(self, tokens=None, error=None, delay=0.0):
        self.tokens = tokens or {'access_token': 'fresh-access-token', 'expires_in': 3600}
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self, refresh_token):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.tokens

# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def user(session_factory):
    async with session_factory() as db:
        user = User(email="creator@example.com", username="creator")
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


@pytest_asyncio.fixture
async def other_user(session_factory):
    async with session_factory() as db:
        user = User(email="someone@example.com", username="someone")
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


@pytest.fixture
def make_account(session_factory, user):
    async def _make(platform=Platform.YOUTUBE, **overrides):
        values = dict(
            user_id=user.id,
            platform=platform,
            platform_user_id="17841400000000001",
            username="creator",
            access_token="access-token",
            refresh_token="refresh-token",
            token_expires_at=utcnow() + timedelta(hours=1),
        )
        values.update(overrides)
        async with session_factory() as db:
            account = SocialAccount(**values)
            db.add(account)
            await db.commit()
            await db.refresh(account)
            return account
    return _make


@pytest.fixture
def make_content(session_factory, user):
    async def _make(**overrides):
        values = dict(
            user_id=user.id,
            platform=Platform.YOUTUBE,
            status=ContentStatus.SCHEDULED,
            scheduled_at=utcnow() - timedelta(minutes=1),
            caption="Morning routine #fitness",
            title="Morning routine",
            media_url="https://media.example.com/uploads/video.mp4",
            media_key="uploads/video.mp4",
        )
        values.update(overrides)
        async with session_factory() as db:
            content = Content(**values)
            db.add(content)
            await db.commit()
            await db.refresh(content)
            return content
    return _make


@pytest.fixture
def load(session_factory):
    """Fresh read of a row, bypassing any session's identity map"""
    async def _load(model, pk):
        async with session_factory() as db:
            return await db.get(model, pk)
    return _load


@pytest.fixture
def jobs_for(session_factory):
    async def _jobs(content_id=None):
        async with session_factory() as db:
            query = select(PublishJob).order_by(PublishJob.id)
            if content_id is not None:
                query = query.where(PublishJob.content_id == content_id)
            result = await db.execute(query)
            return list(result.scalars().all())
    return _jobs

# ============================================================================
# SERVICES
# ============================================================================

@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def youtube(storage):
    """Real adapter flow (fetch, upload, cleanup) with the API call stubbed"""
    service = YouTubeService(storage=storage)
    service.uploads = []
    service.fail_titles = {}

    async def fake_upload(account, **kwargs):
        if kwargs['title'] in service.fail_titles:
            raise service.fail_titles[kwargs['title']]
        service.uploads.append(kwargs)
        video_id = f"yt-video-{len(service.uploads)}"
        return {
            'id': video_id,
            'snippet': {'title': kwargs['title'], 'publishedAt': '2024-01-01T00:00:00Z'},
            'status': {'privacyStatus': kwargs['privacy_status']},
        }

    service.upload_video = fake_upload
    return service


@pytest.fixture
def instagram():
    return FakeInstagramService()


@pytest.fixture
def refresher():
    return FakeRefresher()


@pytest.fixture
def credential_store(refresher):
    return CredentialStore(refreshers={Platform.YOUTUBE: refresher})


@pytest.fixture
def publishing(session_factory, youtube, instagram, credential_store):
    return PublishingService(
        session_factory=session_factory,
        services={Platform.YOUTUBE: youtube, Platform.INSTAGRAM: instagram},
        credential_store=credential_store,
    )
