# backend/publisher/api/cron.py
"""
⏰ SCHEDULED PUBLISHER - Cron Trigger API
Entry points for the external timer: dispatch, container polling, token refresh
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Any, Awaitable, Dict, Optional
import logging

from ..models import utcnow
from ..schemas.publishing import CronTriggerRequest
from ..services.social_media import PublishingService, publishing_service
from .auth import verify_cron_secret

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter(dependencies=[Depends(verify_cron_secret)])

MANUAL_SOURCE = "manual-test"


def get_publishing_service() -> PublishingService:
    return publishing_service


async def _run(job: Awaitable[Dict[str, Any]], name: str):
    """Top-level failures (e.g. database down) become a 500 envelope"""
    try:
        return await job
    except Exception as e:
        logger.error(f"💥 {name} failed: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e) or e.__class__.__name__,
                "processedAt": utcnow().isoformat(),
            },
        )

# ============================================================================
# SCHEDULED DISPATCH
# ============================================================================

@router.post("/process-scheduled")
async def process_scheduled(
    body: Optional[CronTriggerRequest] = None,
    service: PublishingService = Depends(get_publishing_service),
):
    """Publish all due scheduled content"""
    body = body or CronTriggerRequest()
    return await _run(
        service.process_scheduled(as_of=body.current_time, source=body.source),
        "Scheduled publishing",
    )

@router.get("/process-scheduled")
async def process_scheduled_manual(service: PublishingService = Depends(get_publishing_service)):
    """Manual trigger authenticated with ?secret="""
    return await _run(service.process_scheduled(source=MANUAL_SOURCE), "Scheduled publishing")

# ============================================================================
# INSTAGRAM CONTAINER POLLING
# ============================================================================

@router.post("/poll-instagram")
async def poll_instagram(
    body: Optional[CronTriggerRequest] = None,
    service: PublishingService = Depends(get_publishing_service),
):
    body = body or CronTriggerRequest()
    return await _run(
        service.poll_instagram_containers(as_of=body.current_time, source=body.source),
        "Instagram polling",
    )

@router.get("/poll-instagram")
async def poll_instagram_manual(service: PublishingService = Depends(get_publishing_service)):
    return await _run(service.poll_instagram_containers(source=MANUAL_SOURCE), "Instagram polling")

# ============================================================================
# INSTAGRAM TOKEN REFRESH
# ============================================================================

@router.post("/refresh-instagram-tokens")
async def refresh_instagram_tokens(service: PublishingService = Depends(get_publishing_service)):
    return await _run(service.refresh_instagram_tokens(), "Instagram token refresh")

@router.get("/refresh-instagram-tokens")
async def refresh_instagram_tokens_manual(service: PublishingService = Depends(get_publishing_service)):
    return await _run(service.refresh_instagram_tokens(), "Instagram token refresh")
