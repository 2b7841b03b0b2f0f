import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    PRODUCT_NAME: str = "Folio"

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Identity (HS256 bearer tokens)
    AUTH_SECRET_KEY: Optional[str] = None
    AUTH_TOKEN_TTL_SECONDS: int = 60 * 60 * 24 * 7

    # Generation service
    GROQ_API_KEY: Optional[str] = None
    GENERATION_MODEL: str = "llama-3.1-8b-instant"
    GENERATION_TIMEOUT_SECONDS: float = 60.0
    GENERATION_TEMPERATURE: float = 0.7
    GENERATION_MAX_TOKENS: int = 4096

    # Work queue
    REDIS_URL: str = "redis://localhost:6379/0"
    RQ_QUEUE: str = "folio"
    ANALYSIS_JOB_TIMEOUT: str = "5m"

    # Object storage
    OBJECT_STORE_ROOT: str = "./var/objects"
    OBJECT_STORE_BASE_URL: str = "http://localhost:8000/v1/uploads"
    OBJECT_STORE_SIGNING_KEY: Optional[str] = None
    EXPORT_BUCKET: str = "ebooks"
    COVER_BUCKET: str = "cover-images"
    COVER_UPLOAD_TTL_SECONDS: int = 60 * 60

    # App URLs
    BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("folio")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "AUTH_SECRET_KEY",
        "GROQ_API_KEY",
        "OBJECT_STORE_SIGNING_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
