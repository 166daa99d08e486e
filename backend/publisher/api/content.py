# backend/publisher/api/content.py
"""
📝 SCHEDULED PUBLISHER - Content API
Retry failed content and browse the publish job history
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from ..database import get_db
from ..models import User
from ..schemas.publishing import PublishJobResponse
from ..services.publish_ledger import publish_ledger
from ..services.social_media import PublishingService
from .auth import get_current_active_user
from .cron import get_publishing_service

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()

# ============================================================================
# RETRY
# ============================================================================

@router.post("/content/{content_id}/retry")
async def retry_content(
    content_id: int,
    current_user: User = Depends(get_current_active_user),
    service: PublishingService = Depends(get_publishing_service),
):
    """Re-run publishing for a failed content item"""

    result = await service.retry_content(content_id, current_user.id)

    if not result['success']:
        return JSONResponse(
            status_code=500,
            content={
                "error": result['error'],
                "details": {"contentId": content_id, "status": result['status']},
            },
        )

    response = {"success": True, "status": result['status']}
    if result.get('publishedPostId'):
        response["publishedPostId"] = result['publishedPostId']
    if result.get('containerId'):
        response["containerId"] = result['containerId']
    return response

# ============================================================================
# PUBLISH JOB HISTORY
# ============================================================================

@router.get("/publish-jobs", response_model=List[PublishJobResponse])
async def list_publish_jobs(
    content_id: Optional[int] = Query(default=None, alias="contentId"),
    limit: int = Query(default=10, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Caller's publish jobs, newest first"""
    return await publish_ledger.list_jobs(db, current_user.id, content_id=content_id, limit=limit)
