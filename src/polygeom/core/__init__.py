"""
Core module - Shared exceptions, configuration and logging.
"""

from polygeom.core.config import (
    ConversionConfig,
    DistanceQuerySettings,
    GeometryConfig,
    LoggingConfig,
    QueryConfig,
    get_config,
    load_config,
    set_config,
)
from polygeom.core.exceptions import (
    PolygeomError,
    ConfigurationError,
    UnsupportedOperationError,
    UnsupportedConversionError,
    InvalidArgumentError,
    IOFailureError,
)
from polygeom.core.logging import configure_logging, get_logger

__all__ = [
    # Config
    "ConversionConfig",
    "DistanceQuerySettings",
    "GeometryConfig",
    "LoggingConfig",
    "QueryConfig",
    "get_config",
    "load_config",
    "set_config",
    # Exceptions
    "PolygeomError",
    "ConfigurationError",
    "UnsupportedOperationError",
    "UnsupportedConversionError",
    "InvalidArgumentError",
    "IOFailureError",
    # Logging
    "configure_logging",
    "get_logger",
]
