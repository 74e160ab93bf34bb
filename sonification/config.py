"""
Configuration module for the sonification analysis.

Provides Pydantic models for YAML configuration parsing and validation.
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from sonification.clustering import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    MAX_RECOMMENDED_K,
    SELECTION_ITERATIONS,
    SILHOUETTE_GATE,
)
from sonification.features import NUM_FEATURES
from sonification.pca import POWER_ITERATIONS
from sonification.roles import RoleThresholds


class AnalysisConfig(BaseModel):
    """Root configuration for one analysis run."""

    n_components: int = Field(default=3, ge=1, le=NUM_FEATURES)
    n_clusters: int | Literal["auto"] = "auto"
    max_k: int = Field(default=MAX_RECOMMENDED_K, ge=2)
    max_auto_clusters: int = Field(default=6, ge=2, le=MAX_RECOMMENDED_K)
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    selection_iterations: int = Field(default=SELECTION_ITERATIONS, ge=1)
    power_iterations: int = Field(default=POWER_ITERATIONS, ge=1)
    tolerance: float = Field(default=DEFAULT_TOLERANCE, gt=0.0)
    silhouette_gate: float = Field(default=SILHOUETTE_GATE, ge=-1.0, le=1.0)
    seed: int | None = Field(default=None, ge=0)
    roles: RoleThresholds = Field(default_factory=RoleThresholds)

    @field_validator("n_clusters")
    @classmethod
    def validate_n_clusters(cls, v):
        if isinstance(v, int) and v < 1:
            raise ValueError(f"n_clusters must be >= 1 or 'auto', got {v}")
        return v

    @property
    def auto_clusters(self) -> bool:
        return self.n_clusters == "auto"


def _validate(raw_config, source: str) -> AnalysisConfig:
    if raw_config is None:
        raise ValueError(f"Empty configuration {source}")
    if not isinstance(raw_config, dict):
        raise ValueError(
            f"Configuration {source} must be a mapping, got {type(raw_config).__name__}"
        )
    return AnalysisConfig(**raw_config)


def load_config(config_path: str | Path) -> AnalysisConfig:
    """Read an analysis configuration from a YAML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the document is empty or not a mapping
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If a field is out of range
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        return _validate(yaml.safe_load(f), "file")


def load_config_from_string(config_string: str) -> AnalysisConfig:
    """Parse an analysis configuration from YAML text (same rules as load_config)."""
    return _validate(yaml.safe_load(config_string), "string")
