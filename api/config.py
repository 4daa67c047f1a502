"""
API configuration settings.
"""

from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Reading List API"
    api_version: str = "1.0.0"
    api_description: str = "Personal book tracking with catalog-backed book search"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False

    # Security Settings
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # CORS Settings
    cors_origins: list = ["*"]  # Configure appropriately for production
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }


# Global config instance
config = APIConfig()
