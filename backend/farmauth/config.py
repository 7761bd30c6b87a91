"""Service configuration loaded from the environment and .env"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# backend/
BACKEND_DIR = Path(__file__).resolve().parent.parent

DEV_SECRET_KEY = "dev-only-farmauth-secret-change-me-before-deploying-0000"

# bcrypt ignores (4.x) or rejects (5.x) input past this many bytes
BCRYPT_MAX_PASSWORD_BYTES = 72


class Settings(BaseSettings):
    """Farm auth service settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Farm Auth Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database: SQLite file unless DATABASE_URL is set
    DATABASE_URL: str = ""
    SQLITE_PATH: str = ""
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    # Token signing
    SECRET_KEY: str = DEV_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    MAX_REFRESH_TOKEN_FAMILY_SIZE: int = 50
    BCRYPT_ROUNDS: int = 12

    # Refresh cookie / CSRF header
    REFRESH_COOKIE_NAME: str = "refresh_token"
    REFRESH_COOKIE_SECURE: bool = True
    CSRF_HEADER_NAME: str = "X-CSRF-Token"

    # Password policy
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = BCRYPT_MAX_PASSWORD_BYTES  # UTF-8 bytes
    PASSWORD_REQUIRE_COMPLEXITY: bool = True

    # Login attempt limiter, keyed by (email, ip)
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_ATTEMPT_WINDOW_MINUTES: int = 15
    LOGIN_LOCKOUT_MINUTES: int = 15
    LOGIN_LOCKOUT_BACKOFF: bool = False
    LOGIN_LOCKOUT_MAX_MINUTES: int = 240

    # Request throttle (in-memory, per client ip)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_PER_HOUR: int = 600
    SIGNUP_RATE_LIMIT_PER_MINUTE: int = 10
    SIGNUP_RATE_LIMIT_PER_HOUR: int = 50
    PASSWORD_RESET_RATE_LIMIT_PER_MINUTE: int = 5
    PASSWORD_RESET_RATE_LIMIT_PER_HOUR: int = 20
    EMAIL_VERIFICATION_RATE_LIMIT_PER_MINUTE: int = 5
    EMAIL_VERIFICATION_RATE_LIMIT_PER_HOUR: int = 20
    TRUST_PROXY_HEADERS: bool = False  # only behind a proxy that overwrites these headers

    # Password reset and email verification links
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    APP_URL: str = "http://localhost:3000"
    EMAIL_BACKEND: str = "log"
    EMAIL_FROM: str = "no-reply@farm.local"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        """Allow CORS_ORIGINS as a JSON list or a comma separated string."""
        if not isinstance(value, str):
            return value
        text = value.strip()
        if text.startswith("["):
            value = json.loads(text)
            return [str(origin).strip() for origin in value if str(origin).strip()]
        return [origin.strip() for origin in text.split(",") if origin.strip()]

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def _check_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    @field_validator("PASSWORD_MAX_LENGTH")
    @classmethod
    def _check_password_max(cls, value: int) -> int:
        if value > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError(f"PASSWORD_MAX_LENGTH cannot exceed {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    def get_log_file(self) -> str:
        if self.LOG_FILE:
            return self.LOG_FILE
        return str(BACKEND_DIR / "logs" / "farmauth.log")

    def get_database_url(self) -> str:
        """DATABASE_URL when set, otherwise the SQLite file at SQLITE_PATH (default backend/farm_auth.db)."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{self.SQLITE_PATH or BACKEND_DIR / 'farm_auth.db'}"

    def validate_security_settings(self) -> None:
        """
        Refuse to start production with development defaults.

        Raises:
            ValueError: Listing every insecure setting found
        """
        if not self.is_production:
            return

        problems = []
        if self.SECRET_KEY == DEV_SECRET_KEY or len(self.SECRET_KEY) < 32:
            problems.append("SECRET_KEY must be a random value of at least 32 characters (e.g. `openssl rand -hex 32`)")
        if self.BCRYPT_ROUNDS < 10:
            problems.append("BCRYPT_ROUNDS must be at least 10")
        if not self.REFRESH_COOKIE_SECURE:
            problems.append("REFRESH_COOKIE_SECURE must be enabled")
        if self.DEBUG:
            problems.append("DEBUG must be disabled")
        if problems:
            raise ValueError("Insecure production configuration: " + "; ".join(problems))


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
