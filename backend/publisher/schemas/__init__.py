"""
📋 SCHEDULED PUBLISHER - Schemas
"""

from .publishing import (
    InstagramJobMetadata,
    YouTubeJobMetadata,
    JobMetadata,
    job_metadata_adapter,
    CronTriggerRequest,
    DirectPublishRequest,
    PublishJobResponse,
)

__all__ = [
    'InstagramJobMetadata', 'YouTubeJobMetadata', 'JobMetadata', 'job_metadata_adapter',
    'CronTriggerRequest', 'DirectPublishRequest', 'PublishJobResponse',
]
