"""
Custom exceptions for polygeom.

All polygeom exceptions inherit from PolygeomError for easy catching.
"""

from typing import Any


class PolygeomError(Exception):
    """Base exception for all polygeom errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(PolygeomError):
    """Raised when configuration is invalid or missing."""

    pass


class UnsupportedOperationError(PolygeomError):
    """Raised when no algorithm is registered for a (kind, kind, operation) triple."""

    def __init__(
        self,
        operation: str,
        kind_a: str,
        kind_b: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if kind_b is None:
            message = f"Operation '{operation}' is not supported for {kind_a}"
        else:
            message = f"Operation '{operation}' is not supported between {kind_a} and {kind_b}"
        super().__init__(message, details)
        self.operation = operation
        self.kind_a = kind_a
        self.kind_b = kind_b


class UnsupportedConversionError(PolygeomError):
    """Raised when no conversion path is registered for (source, target)."""

    def __init__(
        self,
        source: str,
        target: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"Conversion from {source} to {target} is not supported", details)
        self.source = source
        self.target = target


class InvalidArgumentError(PolygeomError, ValueError):
    """Raised for out-of-range indices, mismatched data or malformed input."""

    pass


class IOFailureError(PolygeomError):
    """Raised when loading or saving a geometry file fails."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path
