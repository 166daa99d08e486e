# backend/tests/test_tasks.py
"""
Test the Celery beat wiring and task wrappers
"""

from unittest.mock import AsyncMock

import pytest

from publisher.tasks.celery_app import celery_app, BEAT_SOURCE
from publisher.tasks import publishing_tasks


class StubPublishingService:
    def __init__(self):
        self.calls = []

    async def process_scheduled(self, as_of=None, source="cron"):
        self.calls.append(("process_scheduled", source))
        return {'success': True, 'processedCount': 0, 'errorCount': 0, 'totalFound': 0, 'source': source}

    async def poll_instagram_containers(self, as_of=None, source="cron"):
        self.calls.append(("poll_instagram_containers", source))
        return {'success': True, 'completedCount': 0, 'totalPolled': 0}

    async def refresh_instagram_tokens(self):
        self.calls.append(("refresh_instagram_tokens", None))
        return {'success': True, 'total': 0, 'refreshed': 0, 'failed': 0, 'errors': []}


@pytest.fixture
def stub_service(monkeypatch):
    service = StubPublishingService()
    engine = AsyncMock()
    monkeypatch.setattr(publishing_tasks, "publishing_service", service)
    monkeypatch.setattr(publishing_tasks, "engine", engine)
    service.engine = engine
    return service


def test_beat_schedule_drives_the_pipeline():
    schedule = celery_app.conf.beat_schedule

    assert schedule['process-scheduled-content']['task'] == "publisher.process_scheduled_content"
    assert schedule['process-scheduled-content']['schedule'] == 60.0
    assert schedule['process-scheduled-content']['kwargs'] == {'source': BEAT_SOURCE}
    assert schedule['poll-instagram-containers']['task'] == "publisher.poll_instagram_containers"
    assert schedule['refresh-instagram-tokens']['schedule'] == 3600.0


def test_process_scheduled_task(stub_service):
    result = publishing_tasks.process_scheduled_content_task.run(source=BEAT_SOURCE)

    assert result['source'] == BEAT_SOURCE
    assert stub_service.calls == [("process_scheduled", BEAT_SOURCE)]
    stub_service.engine.dispose.assert_awaited_once()


def test_poll_and_refresh_tasks(stub_service):
    polled = publishing_tasks.poll_instagram_containers_task.run()
    refreshed = publishing_tasks.refresh_instagram_tokens_task.run()

    assert polled['success'] is True
    assert refreshed['refreshed'] == 0
    assert [name for name, _ in stub_service.calls] == [
        "poll_instagram_containers",
        "refresh_instagram_tokens",
    ]
