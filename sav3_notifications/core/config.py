# sav3_notifications/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    # Application Settings
    APP_NAME: str = "sav3 Notifications API"
    APP_VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    ENV: str = os.environ.get("ENV", "development")
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./sav3_notifications.db")

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    PRIVILEGED_ROLES: str = "admin,service"

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")

    # Middleware settings
    GZIP_MIN_SIZE: int = 500
    MAX_REQUEST_SIZE: int = 1024 * 1024  # 1MB

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 50

    # Push (Firebase Cloud Messaging)
    ENABLE_PUSH_NOTIFICATIONS: bool = True
    FIREBASE_PROJECT_ID: str = os.environ.get("FIREBASE_PROJECT_ID", "")
    FIREBASE_PRIVATE_KEY: str = os.environ.get("FIREBASE_PRIVATE_KEY", "").replace('\\n', '\n')
    FIREBASE_CLIENT_EMAIL: str = os.environ.get("FIREBASE_CLIENT_EMAIL", "")
    PUSH_TTL_SECONDS: int = 24 * 60 * 60

    # Twilio Settings
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.environ.get("TWILIO_PHONE_NUMBER", "")

    # SMTP Settings
    SMTP_HOST: str = os.environ.get("SMTP_HOST", "")
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = os.environ.get("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.environ.get("SMTP_PASSWORD", "")
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = os.environ.get("EMAIL_FROM", "no-reply@sav3.app")
    SMTP_TIMEOUT_SECONDS: float = 10.0

    # Delivery retry defaults
    RETRY_MAX_RETRIES: int = 3
    RETRY_INTERVALS: str = "1,5,15"
    RETRY_BACKOFF_STRATEGY: str = "exponential"

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 120
    RATE_LIMIT_WINDOW_SEC: int = 60
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)

    # Error capture diagnostics
    ERROR_CAPTURE_ENABLED: bool = False
    ERROR_CAPTURE_SERVICE_URL: str = "http://localhost:3002"
    ERROR_CAPTURE_WS_URL: str = "ws://localhost:3003"
    ERROR_CAPTURE_MAX_ERRORS: int = 100
    ERROR_CAPTURE_RECONNECT_INTERVAL: float = 5.0

    # Helper methods for list envs
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
    def privileged_roles_list(self) -> List[str]:
        return self._split_csv(self.PRIVILEGED_ROLES)

    @property
    def retry_intervals_list(self) -> List[float]:
        return [float(v) for v in self._split_csv(self.RETRY_INTERVALS)]

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings: Settings = get_settings()
