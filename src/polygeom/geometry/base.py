"""
Shared behaviour of the geometric data containers.
"""

import copy

import numpy as np

from polygeom.geometry.types import GeometryType, as_matrix, as_vector


class VersionedData:
    """
    Mixin for representation containers.

    Every mutating method bumps ``version``; acceleration caches compare the
    version they were built against to detect stale data. Callers that write
    into the exposed numpy arrays directly must call ``mark_modified()``.
    """

    kind: GeometryType
    version: int = 0

    def mark_modified(self) -> None:
        self.version += 1

    def copy(self):
        """Deep copy with a fresh version counter."""
        duplicate = copy.deepcopy(self)
        duplicate.version = 0
        return duplicate

    def translate(self, t) -> None:
        """Translate the stored data by ``t``."""
        self.transform(np.eye(3), t)

    def transform(self, R, t) -> None:  # pragma: no cover - overridden
        raise NotImplementedError


def linear_map(R, t) -> tuple[np.ndarray, np.ndarray]:
    """Validate a linear map + translation pair."""
    return as_matrix(R, "R"), as_vector(t, "t")
