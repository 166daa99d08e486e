"""
📱 SCHEDULED PUBLISHER - Social Media Services
Platform integrations for scheduled publishing
"""

from .youtube_service import YouTubeService, youtube_service
from .instagram_service import InstagramService, instagram_service
from .publishing_service import PublishingService, publishing_service

__all__ = [
    'YouTubeService', 'youtube_service',
    'InstagramService', 'instagram_service',
    'PublishingService', 'publishing_service',
]
