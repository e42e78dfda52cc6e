"""
Shared configuration management for the ERP data access layer.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ErpSettings(BaseSettings):
    """Settings read from ERP_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ERP_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8020)

    # Hosted backend (PostgREST + auth)
    backend_url: str = Field(default="http://localhost:54321")
    backend_anon_key: str = Field(default="")
    backend_timeout: float = Field(default=10.0)

    # Query cache
    query_cache_ttl: float = Field(default=30.0)

    # Schema-cache retry
    retry_max_retries: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=10.0, ge=0.0)
    schema_cache_error_codes: List[str] = Field(default_factory=lambda: ["PGRST205"])

    # User notification shown on the first schema-cache retry
    sync_notice_id: str = Field(default="schema-retry-toast")
    sync_notice_message: str = Field(
        default="Database synchronization in progress. Please wait a moment..."
    )
    sync_notice_duration: float = Field(default=4.0)

    # Periodic refetch of dashboard data, 0 disables it
    refetch_interval: float = Field(default=0.0, ge=0.0)


def get_settings(**overrides) -> ErpSettings:
    """Build settings, letting explicit overrides win over the environment."""
    return ErpSettings(**overrides)
