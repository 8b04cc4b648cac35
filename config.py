"""
Configuration settings for the learnstate engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every tunable threshold of the analysis cycle lives here so deployments can
adjust them without touching code.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Event Buffer & Analysis Cycle
    # ========================================
    event_buffer_capacity: int = Field(
        default=1000,
        ge=1,
        description="Maximum events held per session before the oldest are evicted",
    )
    analysis_window_ms: int = Field(
        default=60000,
        ge=1,
        description="Width of the event slice fed to the state estimator",
    )
    tick_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between periodic analysis cycles",
    )
    snapshot_history_size: int = Field(
        default=720,
        ge=1,
        description="State snapshots retained per session (720 = 1 hour at 5s ticks)",
    )

    # ========================================
    # Pattern Recognition & Prediction
    # ========================================
    pattern_match_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Match score a pattern must exceed to be recognized",
    )
    prediction_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds an error prediction stays active",
    )
    max_active_predictions: int = Field(
        default=5,
        ge=1,
        description="Cap on simultaneously active predictions",
    )
    prediction_min_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for a prediction to drive an intervention",
    )

    # ========================================
    # Interventions
    # ========================================
    intervention_probability_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Prediction probability that makes an intervention eligible",
    )
    intervention_cooldown_seconds: int = Field(
        default=300,
        ge=0,
        description="Cooldown between state-driven interventions with the same reason",
    )
    tier_reevaluation_streak: int = Field(
        default=3,
        ge=1,
        description="Consecutive below-target cycles before an elite tier re-evaluation advisory",
    )
    audit_log_size: int = Field(
        default=500,
        ge=1,
        description="Interventions retained in the in-memory audit log",
    )

    # ========================================
    # Path Planning
    # ========================================
    replan_window: int = Field(
        default=10,
        ge=1,
        description="Number of recent outcomes used when replanning",
    )

    # ========================================
    # Problem Repository
    # ========================================
    problem_repository_url: str | None = Field(
        default=None,
        description="Base URL of the external problem repository (None = in-memory)",
    )
    problem_repository_timeout_ms: int = Field(
        default=3000,
        ge=1,
        description="Timeout for a single problem repository query",
    )
    problem_repository_retry_attempts: int = Field(
        default=2,
        ge=1,
        description="HTTP attempts per query; each gets an equal share of the query timeout",
    )

    # ========================================
    # Logging & Telemetry
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    telemetry_dir: str | None = Field(
        default=None,
        description="Directory for JSONL telemetry (None = ~/.learnstate/telemetry)",
    )

    def get_telemetry_dir(self) -> Path:
        """Resolve the telemetry directory."""
        if self.telemetry_dir:
            return Path(self.telemetry_dir).expanduser()
        return Path.home() / ".learnstate" / "telemetry"

    @property
    def problem_repository_timeout_seconds(self) -> float:
        return self.problem_repository_timeout_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
