"""
Conversion engine between representation kinds.
"""

from polygeom.conversion.converters import (
    CONVERTER_REGISTRY,
    convert_data,
    converts,
    get_converter,
)

__all__ = [
    "CONVERTER_REGISTRY",
    "convert_data",
    "converts",
    "get_converter",
]
