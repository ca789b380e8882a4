"""
Representation kinds and shared array validation helpers.
"""

from enum import Enum

import numpy as np

from polygeom.core.exceptions import InvalidArgumentError


class GeometryType(Enum):
    """Kind tag of the representation held by a geometry handle."""

    PRIMITIVE = "GeometricPrimitive"
    TRIANGLE_MESH = "TriangleMesh"
    POINT_CLOUD = "PointCloud"
    VOLUME_GRID = "VolumeGrid"
    CONVEX_HULL = "ConvexHull"
    GROUP = "Group"

    @property
    def order(self) -> int:
        """Position in declaration order; used to canonicalize kind pairs."""
        return list(GeometryType).index(self)

    @classmethod
    def parse(cls, value: "str | GeometryType") -> "GeometryType":
        """
        Resolve a kind from an enum member, its value or its member name.

        Raises:
            InvalidArgumentError: If the name is unknown
        """
        if isinstance(value, GeometryType):
            return value
        for member in cls:
            if value == member.value or value.upper() == member.name:
                return member
        raise InvalidArgumentError(
            f"Unknown geometry type: {value}",
            details={"available": [m.value for m in cls]},
        )


def as_points(values, name: str = "points") -> np.ndarray:
    """Coerce ``values`` into an (n, 3) float array, accepting flat 3n lists."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim == 1:
        if arr.size % 3 != 0:
            raise InvalidArgumentError(
                f"{name} must have a multiple of 3 entries",
                details={"size": int(arr.size)},
            )
        arr = arr.reshape(-1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidArgumentError(
            f"{name} must have shape (n, 3)",
            details={"shape": tuple(arr.shape)},
        )
    return arr.copy()


def as_vector(values, name: str = "vector") -> np.ndarray:
    """Coerce ``values`` into a length-3 float vector."""
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise InvalidArgumentError(
            f"{name} must have 3 entries",
            details={"shape": tuple(arr.shape)},
        )
    return arr.copy()


def as_matrix(values, name: str = "matrix") -> np.ndarray:
    """
    Coerce ``values`` into a 3x3 matrix.

    A flat list of 9 entries is read column-major, matching the so3 layout
    used by robotics toolkits.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape == (9,):
        arr = arr.reshape(3, 3).T
    if arr.shape != (3, 3):
        raise InvalidArgumentError(
            f"{name} must be 3x3 or a 9-entry column-major list",
            details={"shape": tuple(arr.shape)},
        )
    return arr.copy()


def unit(vector: np.ndarray, tol: float = 1e-12) -> np.ndarray:
    """Normalize ``vector``; returns the zero vector when its length is below ``tol``."""
    norm = float(np.linalg.norm(vector))
    if norm < tol:
        return np.zeros(3)
    return np.asarray(vector, dtype=np.float64) / norm


def unit_rows(vectors: np.ndarray, tol: float = 1e-12) -> np.ndarray:
    """Row-wise version of :func:`unit`."""
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1)
    out = np.zeros_like(vectors)
    ok = norms >= tol
    out[ok] = vectors[ok] / norms[ok, None]
    return out
