"""
Pydantic settings for environment configuration.

Every option maps to a ``GEMINI_*`` environment variable (or a line in
a ``.env`` file).
"""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config import DEFAULT_BASE_URL, RetryPolicy, TimeoutConfig
from ..logging import LoggingConfig

RetryPreset = Literal["default", "no_retry", "aggressive", "conservative"]


class TransportSettings(BaseSettings):
    """
    Transport configuration from environment variables.

    Reads from:
    1. Environment variables (GEMINI_*)
    2. .env file
    3. Defaults

    Example .env file:
        GEMINI_API_KEY=AIza...
        GEMINI_API_VERSION=v1beta
        GEMINI_TIMEOUT_READ=60
        GEMINI_RETRY_PRESET=aggressive
        GEMINI_RETRY_MAX_ATTEMPTS=4
        GEMINI_LOG_ENABLED=true
        GEMINI_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix='GEMINI_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # Secret; never logged
    api_key: Optional[str] = Field(default=None, repr=False)

    base_url: str = Field(default=DEFAULT_BASE_URL)
    api_version: Literal["v1", "v1beta"] = Field(default="v1")
    verify_ssl: bool = Field(default=True)

    timeout_connect: float = Field(default=10.0, gt=0)
    timeout_read: float = Field(default=30.0, gt=0)

    # Preset first, then the explicit fields on top of it
    retry_preset: RetryPreset = Field(default="default")
    retry_max_attempts: Optional[int] = Field(default=None, ge=1, le=10)
    retry_initial_delay: Optional[float] = Field(default=None, ge=0)
    retry_backoff_multiplier: Optional[float] = Field(default=None, gt=0)
    retry_max_delay: Optional[float] = Field(default=None, ge=0)

    log_enabled: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")
    log_file_path: Optional[str] = None

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('api_key')
    @classmethod
    def strip_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def to_timeout_config(self) -> TimeoutConfig:
        return TimeoutConfig(connect=self.timeout_connect, read=self.timeout_read)

    def to_retry_policy(self) -> RetryPolicy:
        """Preset with the explicitly set fields applied."""
        policy = RetryPolicy.from_preset(self.retry_preset)
        changes = {
            name: value
            for name, value in (
                ("max_attempts", self.retry_max_attempts),
                ("initial_delay", self.retry_initial_delay),
                ("backoff_multiplier", self.retry_backoff_multiplier),
                ("max_delay", self.retry_max_delay),
            )
            if value is not None
        }
        return policy.with_changes(**changes) if changes else policy

    def to_logging_config(self) -> Optional[LoggingConfig]:
        """LoggingConfig, or None when logging is disabled."""
        if not self.log_enabled:
            return None
        return LoggingConfig.create(
            level=self.log_level,
            format=self.log_format,
            enable_file=self.log_file_path is not None,
            file_path=self.log_file_path,
        )
