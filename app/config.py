"""
Application Configuration
Uses Pydantic Settings for environment-based configuration
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Booking Auth API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")
    # Forces non-secure cookies even when ENVIRONMENT is production (e2e runs over plain HTTP)
    TESTING: bool = Field(default=False)
    DEBUG: bool = Field(default=False)
    API_V1_STR: str = "/api/v1"

    # Security
    SECRET_KEY: str
    CSRF_SECRET: str
    # Chosen by the server only, never read from the token header
    ALGORITHM: str = Field(default="HS256", pattern="^HS(256|384|512)$")
    ACCESS_TOKEN_TTL: str = "15m"
    REFRESH_TOKEN_TTL: str = "7d"
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)
    CSRF_TOKEN_EXPIRY_SECONDS: int = 60 * 60 * 24
    CSRF_REJECT_EXPIRED: bool = False

    # CORS
    # Allow str because it can be a comma-separated string in .env
    CORS_ORIGINS: str | list[str] = Field(default=["http://localhost:3000"])

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 0
    DB_POOL_TIMEOUT: int = 10  # seconds to wait for a pooled connection
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Rate Limiting
    REGISTER_RATE_LIMIT: int = 3
    REGISTER_RATE_WINDOW_SECONDS: int = 60 * 60
    LOGIN_IP_RATE_LIMIT: int = 10
    LOGIN_IP_RATE_WINDOW_SECONDS: int = 10 * 60
    LOGIN_EMAIL_RATE_LIMIT: int = 5
    LOGIN_EMAIL_RATE_WINDOW_SECONDS: int = 15 * 60
    CSRF_RATE_LIMIT: int = 5
    CSRF_RATE_WINDOW_SECONDS: int = 60

    # Session metadata
    GEOIP_DB_PATH: str | None = None  # GeoLite2-City.mmdb, lookups disabled when unset

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def secure_cookies(self) -> bool:
        """Cookies carry the Secure flag in production, unless running under test."""
        return self.ENVIRONMENT == "production" and not self.TESTING


# Create global settings instance

load_dotenv()
settings = Settings()  # type: ignore[call-arg]


class CookieName:
    """Cookie names shared by the auth routes and the CSRF guard"""

    ACCESS_TOKEN = "accessToken"
    REFRESH_TOKEN = "refreshToken"
    CSRF_TOKEN = "csrf_token"


CSRF_HEADER_NAME = "x-csrf-token"


class SessionType:
    """Session type constants"""

    CREDENTIAL = "credential"
    OAUTH = "oauth"
