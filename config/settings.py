"""Application settings and configuration management using Pydantic Settings"""

import logging
from typing import Any, Optional
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    # API Keys
    GEMINI_API_KEY: str = ""
    REPLICATE_API_TOKEN: str = ""

    # Provider Endpoints / Models
    REPLICATE_API_URL: str = "https://api.replicate.com/v1/predictions"
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"

    # Provider call behaviour
    PROVIDER_TIMEOUT_SECONDS: float = 180.0
    PROVIDER_POLL_INTERVAL_SECONDS: float = 1.5
    IMAGE_DOWNLOAD_TIMEOUT_SECONDS: float = 30.0

    # Circuit Breaker Configuration (per backing model)
    CIRCUIT_BREAKER_FAIL_MAX: int = 5
    CIRCUIT_BREAKER_RESET_TIMEOUT: int = 60

    # Default generation tuning
    DEFAULT_INFERENCE_STEPS: int = 30
    DEFAULT_GUIDANCE_SCALE: float = 7.5
    DEFAULT_ADAPTER_SCALE: float = 0.8

    # Regeneration escalation
    REGENERATION_EXTRA_STEPS: int = 10
    REGENERATION_EXTRA_GUIDANCE: float = 1.0

    # Database Configuration
    DATABASE_URL: Optional[str] = None

    # Asset storage (local filesystem implementation)
    ASSET_STORAGE_DIR: str = "media/assets"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Environment Settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Application Info
    APP_TITLE: str = "Lookbook Consistency Core"
    APP_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize settings and validate required secrets

        Priority:
        1. Environment variables
        2. .env file
        """
        super().__init__(**kwargs)

        if not self.REPLICATE_API_TOKEN:
            logger.warning("⚠️ REPLICATE_API_TOKEN not set - reference-aware models will fail")

        # Validate required secrets
        if not self.GEMINI_API_KEY:
            raise ValueError(
                "GEMINI_API_KEY is required but not found in environment variables"
            )


# Singleton instance
settings = Settings()
