"""
Indexed triangle mesh container.
"""

from dataclasses import dataclass, field

import numpy as np
import trimesh

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.base import VersionedData, linear_map
from polygeom.geometry.types import GeometryType, as_points


@dataclass(eq=False)
class TriangleMesh(VersionedData):
    """
    A 3D indexed triangle mesh.

    Attributes:
        vertices: (n, 3) vertex coordinates
        indices: (m, 3) triangle vertex indices into ``vertices``
    """

    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    indices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int64))
    version: int = field(default=0, repr=False)

    kind = GeometryType.TRIANGLE_MESH

    def __post_init__(self) -> None:
        self.vertices = as_points(self.vertices, "vertices")
        indices = np.asarray(self.indices, dtype=np.int64)
        if indices.size == 0:
            indices = np.zeros((0, 3), dtype=np.int64)
        self.indices = indices.reshape(-1, 3)
        self.validate()

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "TriangleMesh":
        """Build from a trimesh mesh."""
        return cls(np.asarray(mesh.vertices), np.asarray(mesh.faces))

    def to_trimesh(self) -> trimesh.Trimesh:
        """Convert to a trimesh mesh without merging or reordering vertices."""
        return trimesh.Trimesh(
            vertices=self.vertices.copy(), faces=self.indices.copy(), process=False
        )

    def validate(self) -> None:
        """
        Check that every triangle index refers to an existing vertex.

        Raises:
            InvalidArgumentError: If an index is out of range
        """
        if self.indices.size == 0:
            return
        bad = (self.indices < 0) | (self.indices >= len(self.vertices))
        if bad.any():
            tri = int(np.argwhere(bad)[0][0])
            raise InvalidArgumentError(
                "Triangle index out of range",
                details={
                    "triangle": tri,
                    "indices": self.indices[tri].tolist(),
                    "num_vertices": len(self.vertices),
                },
            )

    def num_vertices(self) -> int:
        return len(self.vertices)

    def num_triangles(self) -> int:
        return len(self.indices)

    def triangles(self) -> np.ndarray:
        """(m, 3, 3) triangle corner coordinates."""
        return self.vertices[self.indices]

    def mean_triangle_diameter(self) -> float:
        """Average longest-edge length over all triangles; 0 for an empty mesh."""
        if self.indices.size == 0:
            return 0.0
        tri = self.triangles()
        edges = np.stack(
            [tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 1], tri[:, 0] - tri[:, 2]], axis=1
        )
        return float(np.linalg.norm(edges, axis=2).max(axis=1).mean())

    def transform(self, R, t) -> None:
        """Apply ``v = R v + t`` to all vertices (R may be any linear map)."""
        R, t = linear_map(R, t)
        self.vertices = self.vertices @ R.T + t
        if np.linalg.det(R) < 0:
            # Mirroring flips the winding
            self.indices = self.indices[:, ::-1].copy()
        self.mark_modified()
