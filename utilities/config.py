"""
Configuration management using environment variables.
Handles database, catalog client and logging settings with validation and defaults.
"""

from typing import Optional
from pydantic import validator
from pydantic_settings import BaseSettings
from pathlib import Path


class AppConfig(BaseSettings):
    """
    Configuration class for service settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "reading_list"

    # Book Catalog Configuration
    catalog_base_url: str = "https://openlibrary.org"
    covers_base_url: str = "https://covers.openlibrary.org"
    request_timeout: float = 10.0
    retry_attempts: int = 1
    retry_delay: float = 0.5
    rate_limit_per_second: int = 10

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    # Development/Testing
    debug: bool = False

    @validator('request_timeout')
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 1 or v > 120:
            raise ValueError('request_timeout must be between 1 and 120 seconds')
        return v

    @validator('retry_attempts')
    def validate_retry_attempts(cls, v):
        """Ensure retry attempts is reasonable."""
        if v < 0 or v > 10:
            raise ValueError('retry_attempts must be between 0 and 10')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Ensure rate limit is reasonable."""
        if v < 1 or v > 50:
            raise ValueError('rate_limit_per_second must be between 1 and 50')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"  # Ignore extra fields from .env
    }

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_user_agent(self) -> str:
        """Get user agent string for catalog requests."""
        return "ReadingList/1.0 (personal book tracker)"

    def get_headers(self) -> dict:
        """Get default headers for HTTP requests."""
        return {
            "User-Agent": self.get_user_agent(),
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.5",
        }


# Global configuration instance
config = AppConfig()
