"""Anomaly engine configuration using Pydantic Settings."""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnomalyEngineConfig(BaseSettings):
    """Main configuration class. Loads from .env file and ANOMALY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ANOMALY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    debug: bool = False
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Baseline cache
    baseline_cache_ttl_seconds: float = 3600.0
    baseline_cache_max_entries: int = 1000
    pattern_min_strength: float = 0.3

    # Detection
    surrounding_window: int = 5  # records on each side kept as anomaly context
    ensemble_confidence_boost: float = 0.1
    isolation_contamination: float = 0.05
    isolation_estimators: int = 100
    one_class_nu: float = 0.05
    ml_min_records: int = 8
    ml_random_state: int = 42

    # Text generation collaborator
    text_generation_url: Optional[str] = None
    text_generation_timeout: float = 10.0
    enrichment_concurrency: int = 4

    # Reporting
    recommendation_volume_threshold: int = 10
    low_quality_threshold: float = 0.7

    # Result persistence
    database_url: str = "sqlite+aiosqlite:///./anomaly_engine.db"
    persist_results: bool = False

    @field_validator("pattern_min_strength", "isolation_contamination", "one_class_nu")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("must be within (0, 1]")
        return v

    @field_validator("text_generation_timeout", "baseline_cache_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


def get_config() -> AnomalyEngineConfig:
    """Factory function to create config instance."""
    return AnomalyEngineConfig()
