#!/usr/bin/env python3
"""Configuration settings loaded from environment / .env file."""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./accend.db"

    # CORS: comma-separated allowed origins
    api_cors_origins: str = "http://localhost:3000"

    # Auth / JWT
    # Generate a secure key with: python -c "import secrets; print(secrets.token_hex(32))"
    jwt_secret_key: str = "CHANGE_ME_in_production_use_a_random_hex_string"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24 * 7   # 7 days, same as the cookie
    jwt_refresh_token_expire_days: int = 30

    # Session cookie
    session_cookie_name: str = "accend_session"
    session_cookie_max_age_seconds: int = 60 * 60 * 24 * 7
    cookie_secure: bool = False

    # Accounts
    initial_admin_email: str = "admin@accend.dev"
    initial_admin_password: str = "changeme"
    allow_admin_signup: bool = False
    default_access_level: int = 1

    # Environment bookings
    booking_max_extension_minutes: int = 60
    booking_max_duration_minutes: int = 8 * 60

    log_level: str = "INFO"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.api_cors_origins.split(",") if o.strip()]


settings = Settings()
