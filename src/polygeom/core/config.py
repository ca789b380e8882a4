"""
Configuration management for polygeom.

Holds the numeric knobs of the proximity and conversion engines and the
per-query distance settings. Configuration can be loaded from YAML files.
"""

import math
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from polygeom.core.exceptions import ConfigurationError


class DistanceQuerySettings(BaseModel):
    """
    Settings for the ``*_ext`` distance queries.

    The calculated distance satisfies ``Dcalc <= D * (1 + rel_err) + abs_err``
    unless ``D >= upper_bound``, in which case ``Dcalc == upper_bound`` may be
    returned. A returned value equal to ``upper_bound`` means "at least
    ``upper_bound``".
    """

    rel_err: float = Field(default=0.0, ge=0.0)
    abs_err: float = Field(default=0.0, ge=0.0)
    upper_bound: float = Field(default=math.inf, ge=0.0)


class QueryConfig(BaseModel):
    """Proximity-query tuning."""

    # Distances below this are treated as zero when normalizing directions
    tolerance: float = Field(default=1e-9, gt=0.0)
    # Sphere-tracing limits for ray casts against distance fields
    ray_max_steps: int = Field(default=1024, gt=0)
    ray_min_step_fraction: float = Field(default=0.1, gt=0.0, le=1.0)
    # Weight of normal similarity relative to spatial distance when clustering
    cluster_normal_weight: float = Field(default=0.5, ge=0.0)
    # Samples per axis when a segment or box is measured against a grid
    grid_samples_per_axis: int = Field(default=64, ge=2)


class ConversionConfig(BaseModel):
    """Conversion-engine defaults."""

    # Extra empty cells added on each side of a grid built from a mesh/primitive
    grid_padding_cells: int = Field(default=2, ge=0)
    # Default primitive resolution as a fraction of the primitive's size
    primitive_resolution_fraction: float = Field(default=0.1, gt=0.0, le=1.0)
    # Refinement passes allowed when subdividing meshes into point clouds
    max_subdivision_iterations: int = Field(default=10, gt=0)


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: str = "INFO"
    json_output: bool = False
    log_file: Optional[str] = None


class GeometryConfig(BaseModel):
    """Top-level configuration model."""

    queries: QueryConfig = Field(default_factory=QueryConfig)
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


_active_config = GeometryConfig()


def get_config() -> GeometryConfig:
    """Return the process-wide active configuration."""
    return _active_config


def set_config(config: GeometryConfig) -> None:
    """Replace the process-wide active configuration."""
    global _active_config
    _active_config = config


def load_config(path: str | Path, activate: bool = True) -> GeometryConfig:
    """
    Load a configuration from a YAML file.

    The file may contain any subset of the ``queries``, ``conversion`` and
    ``logging`` sections; missing values keep their defaults.

    Args:
        path: Path to the YAML file
        activate: If True, the loaded configuration becomes the active one

    Returns:
        GeometryConfig instance

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {path}",
                details={"type": type(data).__name__},
            )
        config = GeometryConfig(**data)
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(
            f"Failed to load geometry config: {path}",
            details={"error": str(e)},
        )

    if activate:
        set_config(config)
    return config
