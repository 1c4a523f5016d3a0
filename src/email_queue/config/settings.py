"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Configures the queue processor from environment variables with
validation and defaults. Supports .env files for local development.
"""

import re

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="Email Queue Processor", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    stage: str = Field(default="dev", description="Deployment stage")

    # Queue store settings
    queue_table_name: str = Field(
        default="email-queue",
        description="Name of the DynamoDB email queue table"
    )
    claim_index_name: str = Field(
        default="ClaimIndex",
        description="GSI ordered by (status, next_attempt_at) used for claim queries"
    )

    # Processing settings
    batch_size: int = Field(
        default=25,
        ge=1,
        le=100,
        description="Items claimed per invocation"
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Default retry ceiling assigned to new queue items"
    )
    base_delay_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Backoff delay after the first failed attempt"
    )
    max_delay_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Upper bound for a single backoff delay"
    )
    backoff_jitter: float = Field(
        default=0.2,
        ge=0,
        lt=1,
        description="Relative jitter applied to backoff delays (0.2 = +/-20%)"
    )
    run_budget_seconds: float = Field(
        default=50.0,
        gt=0,
        description="Wall-clock ceiling for one processing pass"
    )
    stale_lock_threshold_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Age after which a processing item is eligible for reconciliation"
    )
    dispatch_concurrency: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum concurrent provider calls within one batch"
    )
    claim_scan_factor: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Over-fetch multiplier for claim candidates"
    )

    # Delivery settings
    email_provider: str = Field(
        default="dummy",
        pattern=r"^(dummy|http)$",
        description="Delivery backend (dummy or http)"
    )
    email_api_url: str = Field(
        default="",
        description="Send endpoint of the HTTP email provider"
    )
    email_api_key: str = Field(
        default="",
        description="Bearer token for the HTTP email provider"
    )
    email_from: str = Field(
        default="no-reply@example.com",
        description="Sender address used by the HTTP email provider"
    )
    delivery_timeout: int = Field(
        default=10,
        ge=1,
        le=30,
        description="HTTP timeout in seconds for delivery attempts"
    )

    # Metrics settings
    metrics_enabled: bool = Field(default=False, description="Publish run metrics to CloudWatch")
    metrics_namespace: str = Field(default="EmailQueue", description="CloudWatch metrics namespace")

    @field_validator('queue_table_name')
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Validate DynamoDB table name."""
        if not v or not isinstance(v, str):
            raise ValueError("Table name must be a non-empty string")

        if not re.match(r'^[a-zA-Z0-9_-]+$', v):
            raise ValueError(
                "Table name must contain only letters, numbers, hyphens, and underscores"
            )

        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @model_validator(mode='after')
    def validate_backoff_bounds(self) -> "Settings":
        """Backoff cap must not be below the base delay."""
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self


# Global settings instance
settings = Settings()
