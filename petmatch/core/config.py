"""Configuration models and YAML loader for the pet match engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class FilterConfig(BaseModel):
    """Eligibility windows applied before any candidate is scored."""

    max_age_days: int = Field(default=90, ge=1)
    lost_buffer_days: int = Field(default=14, ge=0)
    radius_options_km: list[float] = Field(default_factory=lambda: [1.0, 3.0, 10.0, 30.0])

    @field_validator("radius_options_km")
    @classmethod
    def radius_options_positive(cls, v: list[float]) -> list[float]:
        if not v:
            msg = "radius_options_km must not be empty"
            raise ValueError(msg)
        if any(r <= 0 for r in v):
            msg = "radius options must be positive"
            raise ValueError(msg)
        return sorted(v)


class ScoringConfig(BaseModel):
    """Weights for heuristic candidate ranking."""

    color_match_bonus: float = 3.0
    marks_match_bonus: float = 3.0
    collar_match_bonus: float = 2.0
    distance_bonus_near: float = 3.0
    distance_bonus_mid: float = 2.0
    distance_bonus_far: float = 1.0
    near_km: float = Field(default=1.0, gt=0.0)
    mid_km: float = Field(default=5.0, gt=0.0)
    far_km: float = Field(default=10.0, gt=0.0)
    date_proximity_bonus: float = 1.0
    date_proximity_days: float = Field(default=7.0, gt=0.0)
    min_mark_word_length: int = Field(default=3, ge=1)


class MatchingConfig(BaseModel):
    """Batch size and notification settings for a search run."""

    max_batch: int = Field(default=8, ge=1, le=20)
    notify_threshold: float = Field(default=60.0, ge=0.0, le=100.0)
    max_reasoning_chars: int = Field(default=500, ge=1)
    min_photo_length: int = Field(default=100, ge=0)
    default_radius_km: float = Field(default=10.0, gt=0.0)


class VisionConfig(BaseModel):
    """Which vision model provider compares photos."""

    provider: str = "openrouter"
    models: list[str] = Field(default_factory=list)
    system_prompt: str | None = None

    @field_validator("models")
    @classmethod
    def strip_models(cls, v: list[str]) -> list[str]:
        return [m.strip() for m in v if m.strip()]


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/petmatch.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
