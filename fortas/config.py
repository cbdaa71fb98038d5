"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./fortas.db"

    # Credentials
    password_pepper: str = "change-this-in-production-minimum-32-characters-long"
    bcrypt_rounds: int = 12

    # One-time passwords
    otp_length: int = 6
    otp_ttl_seconds: int = 300  # 5 minutes
    expose_otp_in_response: bool = True  # demo delivery only

    # Sessions
    session_ttl_hours: int = 24
    remember_me_ttl_days: int = 30
    default_client_id: str = "default"

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_auth_per_minute: int = 10  # login, register, OTP, reset per IP
    rate_limit_api_per_minute: int = 100  # per session token (or IP)

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "FORTAS Identity Service"
    version: str = "1.0.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
