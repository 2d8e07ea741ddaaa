# imagefamily/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict
from typing import Optional, List, Dict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra='ignore')

    # Application Settings
    APP_NAME: str = "Image Family API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./imagefamily.db")

    # Storage Settings
    UPLOAD_DIR: str = "uploads"
    BASE_URL: str = os.environ.get("BASE_URL", "http://localhost:8000")
    STORAGE_TIMEOUT_SECONDS: float = 10.0

    # Upload Settings
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_IMAGE_TYPES: List[str] = ["image/jpeg", "image/png", "image/webp", "image/gif"]

    # Variant Settings
    VARIANT_SIZES: Dict[str, int] = {"thumb": 150, "small": 300, "medium": 600, "large": 1200}
    DEFAULT_VARIANT_TYPES: List[str] = ["thumb", "small", "medium"]
    VARIANT_JPEG_QUALITY: int = 85
    REPROCESS_MIN_DIMENSION: int = 150

    # Locking
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)
    LOCK_TIMEOUT_SECONDS: float = 60.0

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings: Settings = get_settings()
