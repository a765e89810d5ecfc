"""
Recurrence engine settings.

Centralized settings loaded from environment variables (or a .env file).
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class RecurrenceSettings(BaseSettings):
    """
    Settings for occurrence generation and background maintenance.

    Environment Variables:
        RECURRENCE_INITIAL_GENERATION_MONTHS: Horizon of a new series (default: 6)
        RECURRENCE_MINIMUM_FUTURE_MONTHS: Extend when less than this remains (default: 3)
        RECURRENCE_EXTENSION_BATCH_MONTHS: Months added per extension (default: 6)
        RECURRENCE_MAX_OCCURRENCES_PER_GENERATION: Safety cap per generation call (default: 500)
        RECURRENCE_HISTORY_RETENTION_MONTHS: Completed occurrences older than this are deleted (default: 12)
        RECURRENCE_MAINTENANCE_INTERVAL_MINUTES: Time between maintenance cycles (default: 60)
        RECURRENCE_ERROR_RETRY_MINUTES: Delay after a failed cycle (default: 15)
        RECURRENCE_ENABLE_CLEANUP: Run history cleanup each cycle (default: true)
        RECURRENCE_ENABLE_INTEGRITY_CHECK: Run integrity scan each cycle (default: true)
        RECURRENCE_CLEANUP_BATCH_SIZE: Rows deleted per cleanup batch (default: 100)
    """

    initial_generation_months: int = Field(
        default=6,
        validation_alias="RECURRENCE_INITIAL_GENERATION_MONTHS",
        ge=1,
    )

    minimum_future_months: int = Field(
        default=3,
        validation_alias="RECURRENCE_MINIMUM_FUTURE_MONTHS",
        ge=1,
    )

    extension_batch_months: int = Field(
        default=6,
        validation_alias="RECURRENCE_EXTENSION_BATCH_MONTHS",
        ge=1,
    )

    max_occurrences_per_generation: int = Field(
        default=500,
        validation_alias="RECURRENCE_MAX_OCCURRENCES_PER_GENERATION",
        ge=1,
        description="Upper bound on occurrences emitted by one generation call"
    )

    history_retention_months: int = Field(
        default=12,
        validation_alias="RECURRENCE_HISTORY_RETENTION_MONTHS",
        ge=1,
    )

    maintenance_interval_minutes: int = Field(
        default=60,
        validation_alias="RECURRENCE_MAINTENANCE_INTERVAL_MINUTES",
        ge=1,
    )

    error_retry_minutes: int = Field(
        default=15,
        validation_alias="RECURRENCE_ERROR_RETRY_MINUTES",
        ge=1,
    )

    enable_cleanup: bool = Field(
        default=True,
        validation_alias="RECURRENCE_ENABLE_CLEANUP",
    )

    enable_integrity_check: bool = Field(
        default=True,
        validation_alias="RECURRENCE_ENABLE_INTEGRITY_CHECK",
    )

    cleanup_batch_size: int = Field(
        default=100,
        validation_alias="RECURRENCE_CLEANUP_BATCH_SIZE",
        ge=1,
    )

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    @property
    def maintenance_interval_seconds(self) -> float:
        return self.maintenance_interval_minutes * 60.0

    @property
    def error_retry_seconds(self) -> float:
        return self.error_retry_minutes * 60.0


@lru_cache()
def get_settings() -> RecurrenceSettings:
    """
    Get cached recurrence settings instance.

    Returns:
        RecurrenceSettings: Configured settings from environment
    """
    return RecurrenceSettings()
