from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the ERP auth service)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Buildline Assembly Tracking"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Assembly workflow
    BUILDLINE_QC_REQUIRED: bool = False  # Route every completed bike through QC review
    BUILDLINE_QC_REQUIRED_MODEL_SKUS: list[str] = []  # Models that always go through QC review
    BUILDLINE_STUCK_THRESHOLD_HOURS: float = 24.0  # Dwell time after which a bike counts as stuck
    BUILDLINE_REPORT_TIMEZONE: str = "Asia/Kolkata"  # Day boundary for the "today" figures

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"
    BUILDLINE_STUCK_SCAN_INTERVAL_MINUTES: int = 60

    @field_validator('CORS_ORIGINS', 'BUILDLINE_QC_REQUIRED_MODEL_SKUS', mode='before')
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(',') if item.strip()]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    def qc_required_for(self, model_sku: Optional[str]) -> bool:
        """Whether a bike of this model must pass QC review before sale."""
        if self.BUILDLINE_QC_REQUIRED:
            return True
        return bool(model_sku) and model_sku in self.BUILDLINE_QC_REQUIRED_MODEL_SKUS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
