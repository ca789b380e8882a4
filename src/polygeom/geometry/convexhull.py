"""
Convex hull container.
"""

from dataclasses import dataclass, field

import numpy as np

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.base import VersionedData, linear_map
from polygeom.geometry.types import GeometryType, as_points, as_vector


@dataclass(eq=False)
class ConvexHull(VersionedData):
    """
    Seed points of a convex hull.

    The points are not necessarily hull vertices; the hull itself is computed
    on demand by the acceleration cache.
    """

    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    version: int = field(default=0, repr=False)

    kind = GeometryType.CONVEX_HULL

    def __post_init__(self) -> None:
        self.points = as_points(self.points)

    def num_points(self) -> int:
        return len(self.points)

    def add_point(self, point) -> int:
        self.points = np.vstack([self.points, as_vector(point, "point")])
        self.mark_modified()
        return len(self.points) - 1

    def get_point(self, index: int) -> np.ndarray:
        if not 0 <= index < len(self.points):
            raise InvalidArgumentError(
                "Point index out of range",
                details={"index": index, "num_points": len(self.points)},
            )
        return self.points[index].copy()

    def transform(self, R, t) -> None:
        R, t = linear_map(R, t)
        self.points = self.points @ R.T + t
        self.mark_modified()
