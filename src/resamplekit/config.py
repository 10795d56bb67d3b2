"""
Engine Configuration
====================

Two layers:
1. ``Settings`` - engine defaults read from environment variables / ``.env``
2. Run configuration - YAML sections validated with pydantic models
"""
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine defaults loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="RESAMPLEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Reproducibility
    DEFAULT_SEED: int = 42

    # Execution
    BACKEND: str = "thread"
    WORKER_COUNT: int = 1

    # Posterior sampling
    CHAINS: int = 4
    ITERATIONS: int = 2000
    CREDIBLE_LEVEL: float = 0.90
    RHAT_THRESHOLD: float = 1.05

    # Logging
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Run configuration sections
class ResamplingConfig(BaseModel):
    """Partition scheme section"""
    scheme: str = "vfold"
    v: Optional[int] = Field(default=None, ge=2)
    repeats: Optional[int] = Field(default=None, ge=1)
    strata_column: Optional[str] = None
    group_column: Optional[str] = None
    bins: Optional[int] = Field(default=None, ge=1)
    prop: Optional[float] = Field(default=None, gt=0, lt=1)
    times: Optional[int] = Field(default=None, ge=1)
    initial: Optional[int] = Field(default=None, ge=1)
    assess: Optional[int] = Field(default=None, ge=1)
    skip: Optional[int] = Field(default=None, ge=0)
    cumulative: Optional[bool] = None

    def scheme_params(self) -> Dict[str, Any]:
        """Parameters actually set in the YAML section."""
        return self.model_dump(exclude_none=True)


class RunConfig(BaseModel):
    """Resample execution section"""
    seed: int = Field(default_factory=lambda: get_settings().DEFAULT_SEED)
    save_predictions: bool = False
    worker_count: int = Field(default_factory=lambda: get_settings().WORKER_COUNT, ge=1)
    backend: str = Field(default_factory=lambda: get_settings().BACKEND)
    outcome: str = "outcome"
    metrics: list = ["rmse", "rsq"]


class ComparisonConfig(BaseModel):
    """Model comparison section"""
    metric: str = "rmse"
    reference: Optional[str] = None
    prior_family: str = "student_t"
    sampler: str = "bootstrap"
    transform: str = "identity"
    chains: int = Field(default_factory=lambda: get_settings().CHAINS, ge=1)
    iterations: int = Field(default_factory=lambda: get_settings().ITERATIONS, ge=1)
    seed: int = Field(default_factory=lambda: get_settings().DEFAULT_SEED)
    effect_size: float = Field(gt=0)
    level: float = Field(default_factory=lambda: get_settings().CREDIBLE_LEVEL, gt=0, lt=1)


class PipelineConfig(BaseModel):
    """Complete run configuration"""
    project: Dict[str, Any] = {"name": "resampling"}
    resampling: ResamplingConfig = Field(default_factory=ResamplingConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    comparison: ComparisonConfig


def load_config(source: Union[str, Path, Dict[str, Any]]) -> PipelineConfig:
    """
    Load and validate a run configuration.

    Parameters
    ----------
    source : str, Path or dict
        Path to a YAML file, or an already parsed mapping

    Returns
    -------
    PipelineConfig
        Validated configuration
    """
    if isinstance(source, dict):
        raw = source
    else:
        with open(source, 'r') as f:
            raw = yaml.safe_load(f) or {}

    return PipelineConfig.model_validate(raw)
