from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Dict, List, Optional


class Settings(BaseSettings):
    # ===================================
    # APPLICATION SETTINGS
    # ===================================
    APP_NAME: str = "AutoClaim - Vehicle Claims Intake"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # ===================================
    # LOGGING
    # ===================================
    LOG_LEVEL: Optional[str] = None  # Overrides the DEBUG-derived level, e.g. "WARNING"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # ===================================
    # API SETTINGS
    # ===================================
    API_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: List[str] = ["*"]

    # ===================================
    # IMAGE UPLOADS
    # ===================================
    MAX_IMAGES_PER_CLAIM: int = 5
    MAX_IMAGE_SIZE_MB: int = 10
    ALLOWED_IMAGE_PREFIX: str = "image/"

    # ===================================
    # TRIAGE POLICY
    # ===================================
    BASE_ESTIMATE_AMOUNT: float = 1000.0
    SEVERITY_MULTIPLIERS: Dict[str, float] = {
        "minor": 1.0,
        "moderate": 2.5,
        "severe": 5.0,
    }
    CLAIM_NUMBER_PREFIX: str = "CLM"

    # ===================================
    # ADAPTER SELECTION
    # ===================================
    OBJECT_STORE_BACKEND: str = "local"  # Options: "local", "s3"
    IMAGE_ANALYZER: str = "mock"  # Options: "mock", "vision"
    NOTIFIER: str = "log"  # Options: "log", "smtp"

    # ===================================
    # LOCAL STORAGE
    # ===================================
    DATA_DIR: str = "data"
    UPLOAD_DIR: str = "data/uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # ===================================
    # S3 (Object Store)
    # ===================================
    S3_BUCKET: Optional[str] = None
    S3_REGION: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None
    S3_PUBLIC_BASE_URL: Optional[str] = None

    # ===================================
    # VISION MODEL (Damage Analysis)
    # ===================================
    VISION_PROVIDER: str = "groq"  # Options: "groq", "google"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 1024
    GROQ_API_KEY: Optional[str] = None
    GROQ_VISION_MODEL: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    GOOGLE_API_KEY: Optional[str] = None
    GOOGLE_MODEL: str = "gemini-2.0-flash-lite"

    # ===================================
    # EMAIL NOTIFICATIONS
    # ===================================
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    FROM_EMAIL: str = "noreply@autoclaim.local"
    FROM_NAME: str = "AutoClaim"
    ADMIN_EMAIL: Optional[str] = None

    # ===================================
    # COMPUTED PROPERTIES
    # ===================================
    @property
    def max_image_size_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024

    @property
    def is_s3_configured(self) -> bool:
        return bool(self.S3_BUCKET)

    @property
    def is_smtp_configured(self) -> bool:
        """Check if an SMTP relay has been configured."""
        return bool(self.SMTP_HOST)

    # ===================================
    # PYDANTIC CONFIG
    # ===================================
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "allow"  # Allow extra fields from .env


# ===================================
# SINGLETON PATTERN
# ===================================
@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
