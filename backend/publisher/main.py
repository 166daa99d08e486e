# backend/publisher/main.py
"""
📤 SCHEDULED PUBLISHER - FastAPI Main Application
Cron triggers, retry, direct publish and job history behind one app
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time
import logging

from .config import settings
from .database import init_db, check_db_connection
from .exceptions import PublisherError
from .api import cron, content, social_media

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"🚀 Starting {settings.APP_NAME}...")

    await init_db()

    logger.info(f"📤 {settings.APP_NAME} is ready!")

    yield

    # Shutdown
    logger.info(f"🛑 Shutting down {settings.APP_NAME}...")

# Initialize FastAPI app
app = FastAPI(
    title="📤 Scheduled Publisher API",
    description="""
    ## Scheduled publishing for Instagram Reels and YouTube

    * **⏰ Cron triggers** - dispatch due content, poll Instagram containers, refresh tokens
    * **🔁 Retry** - re-drive failed content
    * **📱 Direct publish** - publish immediately per platform
    * **📒 Publish jobs** - outcome history per content and platform

    Cron endpoints use the shared `CRON_SECRET`; everything else needs a user JWT.
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "cron", "description": "⏰ External timer entry points"},
        {"name": "content", "description": "📝 Retry and publish job history"},
        {"name": "publishing", "description": "📱 Direct platform publishing"},
        {"name": "health", "description": "💚 System health"},
    ]
)

# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Performance Monitoring Middleware
@app.middleware("http")
async def add_process_time_header(request, call_next):
    """Add processing time to response headers"""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

# Request Logging Middleware
@app.middleware("http")
async def log_requests(request, call_next):
    """Log all incoming requests without query strings (they may carry the cron secret)"""
    logger.info(f"📨 {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"📤 {response.status_code} - {request.method} {request.url.path}")
    return response

# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(PublisherError)
async def publisher_error_handler(request, exc: PublisherError):
    """Render pipeline errors as {error, details}"""
    if exc.status_code >= 500:
        logger.error(f"💥 {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(500)
async def internal_server_error_handler(request, exc):
    """Internal server error handler"""
    logger.error(f"💥 Internal server error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error occurred"}
    )

# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """Liveness with a database round trip"""
    db_ok = await check_db_connection()

    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": "healthy" if db_ok else "unhealthy",
            "timestamp": time.time(),
            "services": {
                "database": "healthy" if db_ok else "unhealthy",
                "api": "healthy"
            },
            "version": settings.APP_VERSION
        }
    )

# ============================================================================
# API ROUTES
# ============================================================================

app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
app.include_router(content.router, prefix="/api", tags=["content"])
app.include_router(social_media.router, prefix="/api", tags=["publishing"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "publisher.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
