# backend/publisher/api/social_media.py
"""
📱 SCHEDULED PUBLISHER - Social Media API
Direct (non-scheduled) publish endpoints per platform
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from ..models import User, Platform
from ..schemas.publishing import DirectPublishRequest
from ..services.social_media import PublishingService
from .auth import get_current_active_user
from .cron import get_publishing_service

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()


async def _publish(service: PublishingService, user: User, platform: Platform, request: DirectPublishRequest):
    result = await service.publish_direct(user.id, platform, request)

    if not result['success']:
        return JSONResponse(
            status_code=500,
            content={
                "error": result['error'],
                "details": {"platform": platform.value, "contentId": request.content_id},
            },
        )
    return result

# ============================================================================
# PUBLISH ENDPOINTS
# ============================================================================

@router.post("/instagram/publish")
async def publish_to_instagram(
    request: DirectPublishRequest,
    current_user: User = Depends(get_current_active_user),
    service: PublishingService = Depends(get_publishing_service),
):
    """Publish a Reel now"""
    return await _publish(service, current_user, Platform.INSTAGRAM, request)

@router.post("/youtube/publish")
async def publish_to_youtube(
    request: DirectPublishRequest,
    current_user: User = Depends(get_current_active_user),
    service: PublishingService = Depends(get_publishing_service),
):
    """Upload a video now"""
    return await _publish(service, current_user, Platform.YOUTUBE, request)
