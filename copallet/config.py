"""
CoPallet Application Configuration
==================================

PURPOSE:
    Pydantic-Settings based configuration for the CoPallet lifecycle service.
    All settings can be overridden via environment variables (COPALLET_ prefix).
    The database URL is read separately from DATABASE_URL by copallet.core.database.
"""

import logging
from typing import List

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Service settings."""

    app_name: str = "CoPallet"
    debug: bool = False

    # Storage / logs
    data_directory: str = "/data"
    log_directory: str = "logs"
    log_level: str = "INFO"

    # Storage-conflict retry applied by the calling layer (routers).
    # Each attempt re-reads the shipment from scratch.
    conflict_retry_attempts: int = 3
    conflict_backoff_min_ms: int = 20
    conflict_backoff_max_ms: int = 200

    # In-app notification store. When off, lifecycle events are only logged.
    notifications_enabled: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    class Config:
        env_file = ".env"
        env_prefix = "COPALLET_"

    def get_log_level(self) -> int:
        """Resolve ``log_level`` to a stdlib level, falling back to INFO."""
        level = logging.getLevelName(self.log_level.upper())
        if isinstance(level, int):
            return level
        logger.warning("Unknown COPALLET_LOG_LEVEL %r — using INFO", self.log_level)
        return logging.INFO


settings = Settings()
