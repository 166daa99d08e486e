# backend/publisher/tasks/publishing_tasks.py
"""
📤 SCHEDULED PUBLISHER - Publishing Tasks
Periodic Celery tasks wrapping the async publishing service
"""

from celery import shared_task, Task
from celery.exceptions import SoftTimeLimitExceeded
from typing import Any, Awaitable, Dict
import logging
import asyncio

from ..database import engine
from ..services.social_media import publishing_service

logger = logging.getLogger(__name__)


def run_async(job: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
    """Run one service call on a fresh event loop, dropping pooled connections bound to it"""

    async def _run():
        try:
            return await job
        finally:
            await engine.dispose()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_run())
    finally:
        loop.close()

# ============================================================================
# PERIODIC TASKS
# ============================================================================

@shared_task(
    bind=True,
    name="publisher.process_scheduled_content",
    max_retries=0,
)
def process_scheduled_content_task(self: Task, source: str = "celery-beat") -> Dict[str, Any]:
    """
    Publish all due scheduled content

    Queue: publishing
    Schedule: every minute
    """

    logger.info(f"⏰ Scheduled publishing triggered (task={self.request.id}, source={source})")

    try:
        return run_async(publishing_service.process_scheduled(source=source))
    except SoftTimeLimitExceeded:
        logger.error("Scheduled publishing exceeded its time limit")
        raise

@shared_task(
    bind=True,
    name="publisher.poll_instagram_containers",
    max_retries=0,
)
def poll_instagram_containers_task(self: Task, source: str = "celery-beat") -> Dict[str, Any]:
    """Check Instagram containers awaiting processing"""

    logger.info(f"📸 Instagram container poll triggered (task={self.request.id})")
    return run_async(publishing_service.poll_instagram_containers(source=source))

@shared_task(
    bind=True,
    name="publisher.refresh_instagram_tokens",
    max_retries=2,
    default_retry_delay=300,  # 5 minutes
)
def refresh_instagram_tokens_task(self: Task) -> Dict[str, Any]:
    """Extend Instagram long-lived tokens close to expiry"""

    try:
        return run_async(publishing_service.refresh_instagram_tokens())
    except Exception as e:
        logger.error(f"Instagram token refresh task failed: {e}")
        raise self.retry(exc=e)
