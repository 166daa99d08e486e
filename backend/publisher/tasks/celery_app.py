# backend/publisher/tasks/celery_app.py
"""
⚡ SCHEDULED PUBLISHER - Celery Task System
Celery beat is the external timer that drives dispatch, polling and token refresh
"""

from celery import Celery, Task
from celery.signals import worker_ready
import logging
import json
from typing import Any, Dict, Optional
import redis

from ..config import settings
from ..models import utcnow

logger = logging.getLogger(__name__)

BEAT_SOURCE = "celery-beat"

# ============================================================================
# CELERY CONFIGURATION
# ============================================================================

# Create Celery app
celery_app = Celery(
    "scheduled_publisher",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "publisher.tasks.publishing_tasks",
    ]
)

# ============================================================================
# CELERY SETTINGS
# ============================================================================

celery_app.conf.update(
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Task routing
    task_routes={
        'publisher.tasks.publishing_tasks.*': {'queue': 'publishing'},
    },

    # Worker settings
    worker_prefetch_multiplier=1,  # One run at a time per worker process
    worker_max_tasks_per_child=100,

    # Task execution limits
    task_soft_time_limit=int(settings.PUBLISH_TIMEOUT_SECONDS * 2),
    task_time_limit=int(settings.PUBLISH_TIMEOUT_SECONDS * 3),
    task_acks_late=True,

    # Beat scheduler
    beat_schedule={
        'process-scheduled-content': {
            'task': 'publisher.process_scheduled_content',
            'schedule': 60.0,  # Every minute
            'kwargs': {'source': BEAT_SOURCE},
        },
        'poll-instagram-containers': {
            'task': 'publisher.poll_instagram_containers',
            'schedule': 30.0,
            'kwargs': {'source': BEAT_SOURCE},
        },
        'refresh-instagram-tokens': {
            'task': 'publisher.refresh_instagram_tokens',
            'schedule': 3600.0,  # Every hour
        },
    },

    # Error handling
    task_reject_on_worker_lost=True,
    task_ignore_result=False,
)

# ============================================================================
# CUSTOM TASK BASE CLASS
# ============================================================================

class PublisherTask(Task):
    """Base task class recording failures and completion stats in Redis"""

    _redis_client: Optional[redis.Redis] = None

    def get_redis_client(self) -> redis.Redis:
        if PublisherTask._redis_client is None:
            PublisherTask._redis_client = redis.from_url(settings.REDIS_URL)
        return PublisherTask._redis_client

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure"""
        logger.error(f"Task {self.name} ({task_id}) failed: {exc}")

        failure_data: Dict[str, Any] = {
            "task_id": task_id,
            "task_name": self.name,
            "error": str(exc),
            "kwargs": kwargs,
            "failed_at": utcnow().isoformat()
        }

        try:
            redis_client = self.get_redis_client()
            redis_client.lpush("publisher:failures", json.dumps(failure_data, default=str))
            redis_client.ltrim("publisher:failures", 0, 999)  # Keep last 1000 failures
        except redis.RedisError as e:
            logger.warning(f"Could not record task failure in Redis: {e}")

    def on_success(self, retval, task_id, args, kwargs):
        """Handle task success"""
        logger.info(f"Task {self.name} ({task_id}) completed")

        try:
            self.get_redis_client().hincrby("publisher:stats:completed", self.name, 1)
        except redis.RedisError as e:
            logger.warning(f"Could not record task stats in Redis: {e}")

# Set as default task class
celery_app.Task = PublisherTask

# ============================================================================
# SIGNAL HANDLERS
# ============================================================================

@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """When worker is ready"""
    logger.info(f"⚡ Celery worker ready: {sender.hostname if sender else 'unknown'}")
