# backend/publisher/config.py
"""
⚙️ SCHEDULED PUBLISHER - Configuration Management
Pydantic-based settings with environment variable support
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with automatic environment variable loading"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # ========================================================================
    # BASIC APPLICATION SETTINGS
    # ========================================================================

    APP_NAME: str = "Scheduled Publisher"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # ========================================================================
    # SECURITY SETTINGS
    # ========================================================================

    SECRET_KEY: str = Field(...)
    ALGORITHM: str = Field(default="HS256")
    CRON_SECRET: str = Field(...)

    # ========================================================================
    # DATABASE / BROKER SETTINGS
    # ========================================================================

    DATABASE_URL: str = Field(...)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # ========================================================================
    # OBJECT STORAGE (S3 / R2)
    # ========================================================================

    AWS_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    AWS_REGION: str = Field(default="auto")
    S3_BUCKET_NAME: str = Field(default="publisher-media")
    S3_ENDPOINT_URL: Optional[str] = Field(default=None)  # R2 / MinIO endpoint
    STORAGE_PUBLIC_URL: Optional[str] = Field(default=None)
    PRESIGNED_URL_EXPIRY: int = Field(default=3600)

    # ========================================================================
    # SOCIAL MEDIA API SETTINGS
    # ========================================================================

    YOUTUBE_CLIENT_ID: Optional[str] = Field(default=None)
    YOUTUBE_CLIENT_SECRET: Optional[str] = Field(default=None)
    YOUTUBE_DEFAULT_CATEGORY_ID: str = Field(default="22")  # People & Blogs
    META_API_VERSION: str = Field(default="v18.0")
    INSTAGRAM_TOKEN_REFRESH_WINDOW_DAYS: int = Field(default=30)

    # ========================================================================
    # SCHEDULER
    # ========================================================================

    SCHEDULE_LOOKAHEAD_SECONDS: int = Field(default=60)
    SCHEDULE_BATCH_SIZE: int = Field(default=50)
    PUBLISH_JOB_RETENTION: int = Field(default=1000)
    PUBLISH_TIMEOUT_SECONDS: float = Field(default=300.0)
    PLATFORM_HTTP_TIMEOUT_SECONDS: float = Field(default=30.0)

    INSTAGRAM_POLL_BATCH_SIZE: int = Field(default=20)
    INSTAGRAM_POLL_INTERVAL_SECONDS: int = Field(default=15)
    INSTAGRAM_POLL_MAX_INTERVAL_SECONDS: int = Field(default=120)
    INSTAGRAM_POLL_MAX_ATTEMPTS: int = Field(default=10)
    INSTAGRAM_POLL_TIMEOUT_SECONDS: int = Field(default=600)

    # ========================================================================
    # CORS
    # ========================================================================

    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,http://127.0.0.1:3000")

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @field_validator("STORAGE_PUBLIC_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        if v:
            return v.rstrip("/")
        return v

    # ========================================================================
    # COMPUTED PROPERTIES
    # ========================================================================

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def meta_graph_url(self) -> str:
        return f"https://graph.facebook.com/{self.META_API_VERSION}"


# Initialize settings
settings = Settings()
