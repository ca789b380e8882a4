"""
Unit tests for configuration management.
"""

import math

import pytest
from pydantic import ValidationError

from polygeom.core.config import (
    DistanceQuerySettings,
    GeometryConfig,
    QueryConfig,
    get_config,
    load_config,
)
from polygeom.core.exceptions import ConfigurationError


class TestDistanceQuerySettings:
    """Tests for DistanceQuerySettings model."""

    def test_defaults(self):
        """Test exact, unbounded defaults."""
        settings = DistanceQuerySettings()
        assert settings.rel_err == 0.0
        assert settings.abs_err == 0.0
        assert math.isinf(settings.upper_bound)

    def test_negative_error_rejected(self):
        """Test error bounds must be non-negative."""
        with pytest.raises(ValidationError):
            DistanceQuerySettings(rel_err=-0.1)

    def test_negative_upper_bound_rejected(self):
        with pytest.raises(ValidationError):
            DistanceQuerySettings(upper_bound=-1.0)


class TestGeometryConfig:
    """Tests for the top-level configuration model."""

    def test_defaults(self):
        """Test section defaults."""
        config = GeometryConfig()
        assert config.queries.tolerance > 0
        assert config.queries.ray_max_steps > 0
        assert config.conversion.grid_padding_cells == 2
        assert config.logging.level == "INFO"

    def test_invalid_values_rejected(self):
        """Test field constraints are enforced."""
        with pytest.raises(ValidationError):
            QueryConfig(ray_min_step_fraction=2.0)


class TestLoadConfig:
    """Tests for loading configuration from YAML."""

    def test_load_partial_file(self, temp_dir):
        """Test missing sections keep their defaults."""
        path = temp_dir / "geometry.yaml"
        path.write_text("queries:\n  tolerance: 0.001\n")

        config = load_config(path, activate=False)

        assert config.queries.tolerance == 0.001
        assert config.conversion.grid_padding_cells == 2

    def test_load_activates(self, temp_dir):
        """Test a loaded config becomes the active one."""
        path = temp_dir / "geometry.yaml"
        path.write_text("conversion:\n  grid_padding_cells: 4\n")

        load_config(path)

        assert get_config().conversion.grid_padding_cells == 4

    def test_load_empty_file(self, temp_dir):
        """Test an empty file yields the defaults."""
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert load_config(path, activate=False) == GeometryConfig()

    def test_missing_file(self, temp_dir):
        """Test loading a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(temp_dir / "missing.yaml")

    def test_invalid_values(self, temp_dir):
        """Test out-of-range values raise ConfigurationError."""
        path = temp_dir / "bad.yaml"
        path.write_text("queries:\n  tolerance: -1\n")
        with pytest.raises(ConfigurationError, match="Failed to load"):
            load_config(path)

    def test_non_mapping_root(self, temp_dir):
        """Test a YAML list at the root is rejected."""
        path = temp_dir / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)
