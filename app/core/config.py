"""Application configuration."""

import os
from typing import List, Tuple, Type, Union

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    YamlConfigSettingsSource,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and an optional YAML file."""

    # Application
    APP_NAME: str = "Portfolios"
    APP_ENV: str = "development"
    DEBUG: bool = False  # Secure default: disabled
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:3000"

    # Security - No default values for sensitive keys (must be in env or YAML)
    SECRET_KEY: str  # Required - no default
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REMEMBER_ME_ACCESS_TOKEN_EXPIRE_HOURS: int = 24
    REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 12

    # Database
    DATABASE_URL: str  # Required - no default
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_POOL_RECYCLE: int = 3600
    DB_RETRY_ATTEMPTS: int = 2
    DB_RETRY_BACKOFF_SECONDS: float = 0.2

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Ensure SECRET_KEY is secure."""
        if len(v.encode("utf-8")) < 32:
            raise ValueError("SECRET_KEY must be at least 32 bytes")
        if v in ["your-secret-key-change-in-production", "changeme", "secret"]:
            raise ValueError("SECRET_KEY must not be a default/weak value")
        return v

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if v < 10:
            raise ValueError("BCRYPT_ROUNDS must be at least 10")
        return v

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Force the async driver on plain postgres URLs."""
        if not v:
            raise ValueError("DATABASE_URL is required")
        if v.startswith("postgres://"):
            v = "postgresql://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    @property
    def REDIS_URL(self) -> str:
        """Build Redis URL. Uses REDIS_URL env var if set."""
        external = os.environ.get("REDIS_URL", "")
        if external:
            return external
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"

    # CORS
    # Override with comma-separated env var: CORS_ORIGINS=https://mysite.com,https://www.mysite.com
    CORS_ORIGINS: Union[str, List[str]] = "http://localhost:3000,http://127.0.0.1:3000"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    CORS_ALLOWED_METHODS: List[str] = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    CORS_ALLOWED_HEADERS: List[str] = [
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ]

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 5
    RATE_LIMIT_WINDOW: str = "1 minute"
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_STORAGE_URI: str = ""

    @property
    def rate_limit_storage(self) -> str:
        return self.RATE_LIMIT_STORAGE_URI or self.REDIS_URL

    # Market data
    MARKET_DATA_PROVIDER: str = "alphavantage"
    MARKET_DATA_API_KEY: str = ""
    MARKET_DATA_CACHE_TTL_SECONDS: int = 900
    MARKET_DATA_TIMEOUT_SECONDS: float = 30.0

    # Email (SMTP)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = "noreply@portfolios.local"
    SMTP_FROM_NAME: str = "Portfolios"
    SMTP_TLS: bool = True

    # Background jobs
    CLEANUP_SCHEDULE: str = "@daily"
    CORPORATE_ACTION_SCHEDULE: str = "@hourly"
    SNAPSHOT_SCHEDULE: str = "@daily"
    RUN_SCHEDULER_IN_PROCESS: bool = False

    @property
    def email_enabled(self) -> bool:
        """Check if email is configured."""
        return bool(self.SMTP_HOST and self.SMTP_USER)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production" and not self.DEBUG

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the YAML file
        yaml_file = os.environ.get("APP_CONFIG_FILE") or None
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
            file_secret_settings,
        )


settings = Settings()
