"""
Lazily built acceleration structures for repeated proximity queries.

Each structure is built in the local frame of the data it indexes. Queries
map their inputs through the handle's current transform instead of
rebuilding, so ``set_current_transform`` never invalidates a cache entry;
replacing or mutating the data does (detected through the data's version).
"""

import itertools
import weakref
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import trimesh
import trimesh.collision
import trimesh.proximity
from scipy.interpolate import RegularGridInterpolator
from scipy.spatial import ConvexHull as QhullHull
from scipy.spatial import QhullError, cKDTree

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.core.logging import get_logger
from polygeom.geometry.convexhull import ConvexHull
from polygeom.geometry.mesh import TriangleMesh
from polygeom.geometry.pointcloud import PointCloud
from polygeom.geometry.transform import RigidTransform
from polygeom.geometry.volumegrid import VolumeGrid

_logger = get_logger(__name__)

_manager_names = itertools.count()


class MeshAccelerator:
    """
    trimesh view of a TriangleMesh. trimesh builds its own triangle r-tree on
    first closest-point/ray query; the fcl collision manager is created on
    first mesh-mesh query.
    """

    def __init__(self, data: TriangleMesh) -> None:
        self.mesh = data.to_trimesh()
        self.name = f"mesh_{next(_manager_names)}"
        self._manager: Optional[trimesh.collision.CollisionManager] = None

    def manager(self, transform: RigidTransform) -> trimesh.collision.CollisionManager:
        """fcl manager holding this mesh, posed at ``transform``."""
        if self._manager is None:
            self._manager = trimesh.collision.CollisionManager()
            self._manager.add_object(self.name, self.mesh)
            _logger.debug("fcl_bvh_built", name=self.name, faces=len(self.mesh.faces))
        self._manager.set_transform(self.name, transform.matrix())
        return self._manager

    def closest_points(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Closest surface points, distances and triangle ids for local points."""
        closest, distance, triangle_id = trimesh.proximity.closest_point(self.mesh, points)
        return np.asarray(closest), np.asarray(distance), np.asarray(triangle_id)


class PointCloudAccelerator:
    """k-d tree over the local point coordinates."""

    def __init__(self, data: PointCloud) -> None:
        self.points = data.points.copy()
        self.tree = cKDTree(self.points) if len(self.points) else None


class VolumeGridAccelerator:
    """
    Trilinear interpolators over cell values and their finite-difference
    gradients.
    """

    def __init__(self, data: VolumeGrid) -> None:
        if min(data.dims) < 2:
            raise InvalidArgumentError(
                "VolumeGrid queries need at least 2 cells along every axis",
                details={"dims": data.dims},
            )
        self.axes = data.axes()
        self.lower = np.array([a[0] for a in self.axes])
        self.upper = np.array([a[-1] for a in self.axes])
        self.cell = data.cell_size()
        self.bmin, self.bmax = data.bmin.copy(), data.bmax.copy()
        self.value = RegularGridInterpolator(self.axes, data.values, bounds_error=False, fill_value=None)
        gradients = np.gradient(data.values, *self.cell)
        self.gradient = [
            RegularGridInterpolator(self.axes, g, bounds_error=False, fill_value=None)
            for g in gradients
        ]

    def signed_distance(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Interpolated values and unit gradients at local ``points``.

        Outside the cell-centre lattice the value at the nearest lattice point
        is extended by the Euclidean distance to it.
        """
        points = np.atleast_2d(points)
        clamped = np.clip(points, self.lower, self.upper)
        values = self.value(clamped)
        outside = np.linalg.norm(points - clamped, axis=1)
        values = np.where(outside > 0.0, np.maximum(values, 0.0) + outside, values)
        grads = np.column_stack([g(clamped) for g in self.gradient])
        away = points - clamped
        grads = np.where((outside > 0.0)[:, None], away, grads)
        norms = np.linalg.norm(grads, axis=1)
        ok = norms > 1e-12
        grads[ok] /= norms[ok, None]
        grads[~ok] = 0.0
        return values, grads


class ConvexHullAccelerator:
    """Qhull facets of the hull of the seed points."""

    def __init__(self, data: ConvexHull) -> None:
        if len(data.points) == 0:
            raise InvalidArgumentError("ConvexHull has no points")
        self.vertices, self.equations, self.simplices = hull_facets(data.points)


def qhull(points: np.ndarray) -> QhullHull:
    """
    Qhull hull of ``points``. Inputs with fewer than 4 points are thickened
    and flat inputs are joggled, so ``hull.points`` may differ from ``points``.
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) < 4:
        # Qhull needs a full-dimensional input; thicken points and segments
        scale = max(1.0, float(np.abs(points).max()))
        offsets = np.vstack([np.zeros(3), np.eye(3) * 1e-9 * scale])
        points = (points[:, None, :] + offsets[None, :, :]).reshape(-1, 3)
    try:
        return QhullHull(points)
    except (QhullError, ValueError):
        return QhullHull(points, qhull_options="QJ")


def hull_facets(points: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Hull vertices, outward facet equations and triangle simplices (indices
    into the returned vertices).
    """
    hull = qhull(points)
    points = hull.points
    index = {int(v): i for i, v in enumerate(hull.vertices)}
    remap = np.vectorize(index.get)
    return points[hull.vertices], hull.equations.copy(), remap(hull.simplices)


_BUILDERS = {
    TriangleMesh: MeshAccelerator,
    PointCloud: PointCloudAccelerator,
    VolumeGrid: VolumeGridAccelerator,
    ConvexHull: ConvexHullAccelerator,
}


@dataclass
class CacheEntry:
    """Acceleration structure stamped with the data identity and version it indexes."""

    data_ref: weakref.ref
    version: int
    structure: Any

    def is_current(self, data: Any) -> bool:
        return self.data_ref() is data and self.version == data.version


def build_accelerator(data: Any) -> CacheEntry:
    """Build the structure for ``data`` (None for kinds that need none)."""
    builder = _BUILDERS.get(type(data))
    structure = builder(data) if builder is not None else None
    if structure is not None:
        _logger.debug(
            "accelerator_built",
            kind=data.kind.value,
            structure=type(structure).__name__,
            version=data.version,
        )
    return CacheEntry(weakref.ref(data), data.version, structure)
