"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SDK settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # Application
    app_name: str = "apisix-sdk"
    app_version: str = "0.1.0"

    # Admin API
    admin_base_url: str = Field(default="http://127.0.0.1:9180")
    admin_api_key: Optional[SecretStr] = Field(default=None)
    admin_timeout: int = Field(default=30000, gt=0, description="Admin API timeout in milliseconds")

    # Control API
    control_base_url: str = Field(default="http://127.0.0.1:9090")
    control_timeout: Optional[int] = Field(
        default=None, gt=0, description="Control API timeout in milliseconds, defaults to admin_timeout"
    )

    # Response cache
    cache_ttl: float = Field(default=30.0, gt=0, description="Read cache TTL in seconds")

    # Retry
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=10.0, ge=0.0)
    retry_jitter: float = Field(default=0.1, ge=0.0)

    # Connection registry
    max_connections: int = Field(default=10, ge=1)
    connection_ttl: float = Field(default=300.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    model_config = SettingsConfigDict(
        env_prefix="APISIX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @field_validator("admin_base_url", "control_base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_retry_window(self):
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must not be lower than retry_base_delay")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def resolved_control_timeout(self) -> int:
        return self.control_timeout or self.admin_timeout

    def get_api_key(self) -> Optional[str]:
        """Get the Admin API key, if one is configured"""
        return self.admin_api_key.get_secret_value() if self.admin_api_key else None

    def model_dump(self, **kwargs):
        """Override to mask the API key when serializing"""
        data = super().model_dump(**kwargs)

        key = self.get_api_key()
        if key:
            # Keep first 4 chars for identification
            if len(key) > 4:
                data["admin_api_key"] = key[:4] + "*" * (len(key) - 4)
            else:
                data["admin_api_key"] = "*" * len(key)

        return data


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


