# hairstyle_changer/config.py
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # DB
    DATABASE_URL: str = "sqlite:///./app.db"

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # kie.ai
    KIE_API_KEY: str | None = None
    KIE_ENDPOINT: str = "https://api.kie.ai"
    KIE_TIMEOUT: int = 60

    # Public base URL of this service, used to build provider callback URLs
    DOMAIN: str = "http://localhost:8000"
    # Public base URL that serves objects written by the storage backend
    CDN_URL: str = "http://localhost:8000/static/"

    # Production mode enables provider callbacks and result relocation
    PRODUCTION: bool = False
    # None means "follow PRODUCTION"
    RELOCATE_RESULTS: bool | None = None

    # Storage backend: "local" (default) or "s3" (for AWS S3 / R2 / S3-compatible)
    STORAGE_BACKEND: str = "local"
    STORAGE_TIMEOUT: int = 120

    # S3 configuration (used when STORAGE_BACKEND == "s3")
    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_ENDPOINT: str | None = None  # optional (useful for R2 or custom endpoints)
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None

    LOG_LEVEL: str = "INFO"

    # pydantic v2 settings
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _default_relocation(self) -> "Settings":
        if self.RELOCATE_RESULTS is None:
            self.RELOCATE_RESULTS = self.PRODUCTION
        return self

    @property
    def callback_url(self) -> str | None:
        """Kie webhook URL, only advertised to the provider in production."""
        if not self.PRODUCTION:
            return None
        return self.DOMAIN.rstrip("/") + "/webhooks/kie-image"


settings = Settings()
