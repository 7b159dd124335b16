import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application Settings
    APP_NAME: str = "Cyclofit Analysis API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))
    WORKERS: int = 1

    # Database Settings
    DATABASE_URL: str = "sqlite:///./cyclofit.db"

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS Settings (comma-separated strings)
    ALLOWED_ORIGINS: str = "*"
    ALLOWED_METHODS: str = "GET,POST,OPTIONS"
    ALLOWED_HEADERS: str = "*"
    CORS_ALLOW_CREDENTIALS: bool = True

    # Video Upload Settings
    MAX_VIDEO_SIZE: int = 100 * 1024 * 1024  # 100MB
    ALLOWED_VIDEO_TYPES: str = "application/octet-stream"
    ALLOWED_VIDEO_EXTENSIONS: str = ".mov,.mp4,.m4v,.avi,.mkv"
    VIDEO_KEY_PREFIX: str = "videos"
    DELETE_ORPHANED_UPLOADS: bool = False

    # Storage Settings
    STORAGE_BACKEND: str = "local"  # local | s3
    UPLOAD_DIR: str = "uploads"
    SIGNED_URL_EXPIRES_SECONDS: int = 3600
    AWS_REGION: str = "us-east-1"
    AWS_BUCKET_NAME: str = ""
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None

    # Ledger Settings
    LEDGER_BACKEND: str = "sql"  # sql | memory

    # Processing Settings
    PROCESSING_SERVICE_URL: str = "http://localhost:5000/process-video"
    PROCESSING_CONCURRENCY: int = 2
    PROCESSING_TIMEOUT_SECONDS: int = 600  # matches the upstream client timeout
    WATCHDOG_ENABLED: bool = True
    WATCHDOG_INTERVAL_SECONDS: int = 60
    RECOVER_PENDING_ON_STARTUP: bool = True

    # Middleware settings
    GZIP_MIN_SIZE: int = 500

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    SUBMISSIONS_PER_HOUR: int = 20
    REDIS_URL: Optional[str] = None

    # Base URL for locally signed video links
    BASE_URL: str = "http://localhost:8000"

    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def allowed_methods_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_METHODS)

    @property
    def allowed_headers_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_HEADERS)

    @property
    def allowed_video_types_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_VIDEO_TYPES)

    @property
    def allowed_video_extensions_list(self) -> List[str]:
        return [ext.lower() for ext in self._split_csv(self.ALLOWED_VIDEO_EXTENSIONS)]


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # CORS_ORIGINS is accepted as an alias for ALLOWED_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s


settings: Settings = get_settings()
