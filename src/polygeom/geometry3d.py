"""
The polymorphic geometry handle.

A ``Geometry3D`` holds one representation (mesh, point cloud, volume grid,
convex hull, primitive or group) either standalone or by reference into a
registered world, plus a current rigid transform, a collision margin and a
lazily built acceleration structure.

Example:
    >>> a = Geometry3D(GeometricPrimitive("sphere", [0, 0, 0, 1]))
    >>> b = Geometry3D(GeometricPrimitive("sphere", [3, 0, 0, 1]))
    >>> a.collides(b)
    False
    >>> round(a.distance_simple(b), 6)
    1.0
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np

from polygeom.conversion import convert_data
from polygeom.core.config import DistanceQuerySettings
from polygeom.core.exceptions import InvalidArgumentError, PolygeomError
from polygeom.core.logging import get_logger, query_context
from polygeom.geometry import primitive as prim
from polygeom.geometry.convexhull import ConvexHull
from polygeom.geometry.group import Group
from polygeom.geometry.mesh import TriangleMesh
from polygeom.geometry.pointcloud import PointCloud
from polygeom.geometry.primitive import GeometricPrimitive
from polygeom.geometry.transform import RigidTransform
from polygeom.geometry.types import GeometryType, as_matrix, as_vector
from polygeom.geometry.volumegrid import VolumeGrid
from polygeom.io import load_geometry, save_geometry
from polygeom.proximity import engine
from polygeom.proximity.accel import CacheEntry, build_accelerator
from polygeom.proximity.operand import Operand
from polygeom.proximity.results import ContactQueryResult, DistanceQueryResult
from polygeom.world import WorldGeometryStore, WorldItemRef, register_world

_logger = get_logger(__name__)

Representation = Union[TriangleMesh, PointCloud, VolumeGrid, ConvexHull, GeometricPrimitive, Group]

_REPRESENTATIONS = (TriangleMesh, PointCloud, VolumeGrid, ConvexHull, GeometricPrimitive, Group)


class Ownership(Enum):
    """Who owns the representation a handle points at."""

    EMPTY = "empty"
    STANDALONE = "standalone"
    REFERENCED = "referenced"


class _Storage:
    """
    Representation slot shared by aliased handles.

    Standalone storage owns ``data``; referenced storage holds only the
    world lookup key.
    """

    def __init__(
        self,
        mode: Ownership = Ownership.EMPTY,
        data: Optional[Representation] = None,
        ref: Optional[WorldItemRef] = None,
    ) -> None:
        self.mode = mode
        self.data = data
        self.ref = ref


class Geometry3D:
    """
    Geometry handle with a current transform, a collision margin and cached
    acceleration structures.

    Args:
        data: Representation to own (a copy is not made), or None for an
              empty handle
    """

    def __init__(self, data: Optional[Representation] = None) -> None:
        self._storage = _Storage()
        self._transform = RigidTransform.identity()
        self._margin = 0.0
        self._cache: Optional[CacheEntry] = None
        if data is not None:
            self.set_data(data)

    def __repr__(self) -> str:
        return f"Geometry3D(type={self.type_name!r}, ownership={self.ownership.value})"

    # ------------------------------------------------------------------
    # Ownership and data
    # ------------------------------------------------------------------

    @property
    def ownership(self) -> Ownership:
        return self._storage.mode

    @property
    def world_item(self) -> Optional[WorldItemRef]:
        """(world id, item id) of a referenced handle, None otherwise."""
        return self._storage.ref

    @property
    def data(self) -> Optional[Representation]:
        """The representation, resolved through the world for referenced handles."""
        storage = self._storage
        if storage.mode == Ownership.REFERENCED:
            return storage.ref.resolve().item_geometry(storage.ref.item_id)
        return storage.data

    def set_data(self, data: Optional[Representation]) -> None:
        """
        Store ``data`` (without copying) in this handle's storage.

        Referenced handles write through to the world item.
        """
        if data is not None and not isinstance(data, _REPRESENTATIONS):
            raise InvalidArgumentError(
                f"Not a geometry representation: {type(data).__name__}",
                details={"accepted": [cls.__name__ for cls in _REPRESENTATIONS]},
            )
        storage = self._storage
        if storage.mode == Ownership.REFERENCED:
            storage.ref.resolve().set_item_geometry(storage.ref.item_id, data)
        else:
            storage.data = data
            storage.mode = Ownership.EMPTY if data is None else Ownership.STANDALONE
        self._cache = None

    def is_standalone(self) -> bool:
        return self._storage.mode == Ownership.STANDALONE

    def empty(self) -> bool:
        return self.data is None

    def type(self) -> Optional[GeometryType]:
        """Kind of the held representation (None when empty)."""
        data = self.data
        return None if data is None else data.kind

    @property
    def type_name(self) -> str:
        kind = self.type()
        return "" if kind is None else kind.value

    def set(self, rhs: "Geometry3D") -> None:
        """
        Deep-copy ``rhs``'s representation and margin into this handle's
        storage. The ownership mode is unchanged, so a referenced handle
        overwrites its world item.
        """
        source = rhs.data
        self.set_data(None if source is None else source.copy())
        self._margin = rhs._margin

    def assign(self, rhs: "Geometry3D") -> None:
        """
        Make this handle an alias of ``rhs``: both share one storage (and so
        one ownership mode), and this handle takes ``rhs``'s transform and
        margin.
        """
        self._storage = rhs._storage
        self._transform = rhs._transform.copy()
        self._margin = rhs._margin
        self._cache = None

    def clone(self) -> "Geometry3D":
        """Standalone deep copy with the same transform and margin and a cold cache."""
        source = self.data
        duplicate = Geometry3D(None if source is None else source.copy())
        duplicate._transform = self._transform.copy()
        duplicate._margin = self._margin
        return duplicate

    def free(self) -> None:
        """
        Release the representation and return to empty.

        Standalone data is released for every alias of the storage; a
        referenced handle only detaches and the world item keeps its data.
        """
        if self._storage.mode == Ownership.REFERENCED:
            self._storage = _Storage()
        else:
            self._storage.data = None
            self._storage.mode = Ownership.EMPTY
        self._cache = None

    def attach(self, world: WorldGeometryStore, item_id: int) -> None:
        """Reference the geometry of ``item_id`` in ``world`` (registering the world)."""
        register_world(world)
        self._storage = _Storage(Ownership.REFERENCED, ref=WorldItemRef(world.world_id, item_id))
        self._cache = None
        _logger.debug("geometry_attached", world_id=world.world_id, item_id=item_id)

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def _typed(self, kind: GeometryType) -> Any:
        data = self.data
        if data is None or data.kind != kind:
            raise InvalidArgumentError(
                f"Geometry is not a {kind.value}",
                details={"type": self.type_name},
            )
        return data

    def get_triangle_mesh(self) -> TriangleMesh:
        return self._typed(GeometryType.TRIANGLE_MESH)

    def get_point_cloud(self) -> PointCloud:
        return self._typed(GeometryType.POINT_CLOUD)

    def get_volume_grid(self) -> VolumeGrid:
        return self._typed(GeometryType.VOLUME_GRID)

    def get_convex_hull(self) -> ConvexHull:
        return self._typed(GeometryType.CONVEX_HULL)

    def get_geometric_primitive(self) -> GeometricPrimitive:
        return self._typed(GeometryType.PRIMITIVE)

    def set_triangle_mesh(self, mesh: TriangleMesh) -> None:
        self.set_data(mesh.copy())

    def set_point_cloud(self, cloud: PointCloud) -> None:
        self.set_data(cloud.copy())

    def set_volume_grid(self, grid: VolumeGrid) -> None:
        self.set_data(grid.copy())

    def set_convex_hull(self, hull: ConvexHull) -> None:
        self.set_data(hull.copy())

    def set_geometric_primitive(self, primitive: GeometricPrimitive) -> None:
        self.set_data(primitive.copy())

    def set_convex_hull_group(self, g1: "Geometry3D", g2: "Geometry3D") -> None:
        """
        Store the convex hull of ``g1`` and ``g2`` in their current relative
        pose, expressed in ``g1``'s local frame. This handle takes ``g1``'s
        current transform.
        """
        frame = g1.get_current_transform_object()
        points = [g1._hull_points()]
        world = g2.get_current_transform_object().apply(g2._hull_points())
        points.append(frame.apply_inverse(world))
        self.set_data(ConvexHull(np.vstack(points)))
        self._transform = frame

    def _hull_points(self) -> np.ndarray:
        data = self.data
        if data is None:
            raise InvalidArgumentError("Cannot take the hull of an empty geometry")
        if data.kind == GeometryType.GROUP:
            return np.vstack([
                child.get_current_transform_object().apply(child._hull_points())
                for child in data.children
            ])
        if data.kind != GeometryType.CONVEX_HULL:
            data = convert_data(data, GeometryType.CONVEX_HULL)
        return data.points

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def set_group(self) -> None:
        """Replace the representation with an empty group."""
        self.set_data(Group())

    def get_element(self, index: int) -> "Geometry3D":
        return self._typed(GeometryType.GROUP).get_element(index)

    def set_element(self, index: int, geometry: "Geometry3D") -> None:
        """Store a clone of ``geometry`` as element ``index`` (``num_elements()`` appends)."""
        self._typed(GeometryType.GROUP).set_element(index, geometry.clone())

    def num_elements(self) -> int:
        return self._typed(GeometryType.GROUP).num_elements()

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def set_current_transform(self, R, t) -> None:
        """
        Set the virtual world pose without touching the stored data.

        Raises:
            InvalidArgumentError: If ``R`` is not a rotation matrix
        """
        R = as_matrix(R, "R")
        if not np.allclose(R @ R.T, np.eye(3), atol=1e-6) or np.linalg.det(R) <= 0:
            raise InvalidArgumentError("Current transform must be a rotation", details={"R": R.tolist()})
        self._transform = RigidTransform(R, t)

    def get_current_transform(self) -> tuple[np.ndarray, np.ndarray]:
        return self._transform.as_tuple()

    def get_current_transform_object(self) -> RigidTransform:
        return self._transform.copy()

    def transform(self, R, t) -> None:
        """
        Apply ``x = R x + t`` to the stored data and reset the current
        transform to identity.

        Raises:
            InvalidArgumentError: If the representation cannot hold the map
        """
        data = self.data
        if data is None:
            raise InvalidArgumentError("Cannot transform an empty geometry")
        data.transform(as_matrix(R, "R"), as_vector(t, "t"))
        self._transform = RigidTransform.identity()
        self._cache = None

    def translate(self, t) -> None:
        self.transform(np.eye(3), t)

    def rotate(self, R) -> None:
        self.transform(R, np.zeros(3))

    def scale(self, sx: float, sy: Optional[float] = None, sz: Optional[float] = None) -> None:
        """Uniform scaling with one argument, per-axis scaling with three."""
        if sy is None and sz is None:
            sy = sz = sx
        elif sy is None or sz is None:
            raise InvalidArgumentError("scale takes one or three factors")
        self.transform(np.diag([sx, sy, sz]), np.zeros(3))

    # ------------------------------------------------------------------
    # Margin and bounds
    # ------------------------------------------------------------------

    def set_collision_margin(self, margin: float) -> None:
        if margin < 0:
            raise InvalidArgumentError("Collision margin must be non-negative", details={"margin": margin})
        self._margin = float(margin)

    def get_collision_margin(self) -> float:
        return self._margin

    def get_bb(self) -> tuple[np.ndarray, np.ndarray]:
        """
        World box containing the geometry: the local bounding box mapped by
        the current transform (loose under rotation).
        """
        lower, upper = self._local_bounds()
        if not np.isfinite(lower).all():
            return lower, upper
        world = self._transform.apply(_corners(lower, upper))
        return world.min(axis=0), world.max(axis=0)

    def get_bb_tight(self) -> tuple[np.ndarray, np.ndarray]:
        """Exact world box of the geometry under the current transform."""
        return _bounds_of(self._world_points(self._transform))

    def _local_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        data = self.data
        if data is None:
            return _bounds_of(np.zeros((0, 3)))
        kind = data.kind
        if kind == GeometryType.PRIMITIVE:
            return data.bounds()
        if kind == GeometryType.VOLUME_GRID:
            return data.bmin.copy(), data.bmax.copy()
        if kind == GeometryType.GROUP:
            boxes = [child.get_bb() for child in data.children if not child.empty()]
            if not boxes:
                return _bounds_of(np.zeros((0, 3)))
            return np.min([b[0] for b in boxes], axis=0), np.max([b[1] for b in boxes], axis=0)
        return _bounds_of(data.vertices if kind == GeometryType.TRIANGLE_MESH else data.points)

    def _world_points(self, transform: RigidTransform) -> np.ndarray:
        """Points whose world box is the geometry's exact box."""
        data = self.data
        if data is None:
            return np.zeros((0, 3))
        kind = data.kind
        if kind == GeometryType.GROUP:
            parts = [
                child._world_points(transform.compose(child.get_current_transform_object()))
                for child in data.children
            ]
            return np.vstack(parts) if parts else np.zeros((0, 3))
        if kind == GeometryType.PRIMITIVE and data.type == prim.SPHERE:
            center = transform.apply(data.center)
            return np.vstack([center - data.radius, center + data.radius])
        if kind == GeometryType.PRIMITIVE:
            local = data.corners() if data.type == prim.AABB else data.properties.reshape(-1, 3)
        elif kind == GeometryType.VOLUME_GRID:
            local = _corners(data.bmin, data.bmax)
        elif kind == GeometryType.TRIANGLE_MESH:
            local = data.vertices
        else:
            local = data.points
        return transform.apply(local)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def load_file(self, path: Union[str, Path]) -> bool:
        """Load a representation from file; returns False (and logs) on failure."""
        try:
            self.set_data(load_geometry(path))
        except PolygeomError as e:
            _logger.warning("geometry_load_failed", path=str(path), error=str(e))
            return False
        return True

    def save_file(self, path: Union[str, Path]) -> bool:
        """Save the representation to file; returns False (and logs) on failure."""
        data = self.data
        if data is None:
            _logger.warning("geometry_save_failed", path=str(path), error="geometry is empty")
            return False
        try:
            save_geometry(data, path)
        except PolygeomError as e:
            _logger.warning("geometry_save_failed", path=str(path), error=str(e))
            return False
        return True

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def convert(self, target: Union[str, GeometryType], param: float = 0.0) -> "Geometry3D":
        """
        Convert to another representation kind.

        Args:
            target: Kind name (e.g. ``"VolumeGrid"``) or GeometryType
            param: Conversion-specific resolution/threshold; 0 picks a
                   default derived from the geometry's scale

        Returns:
            A new standalone handle with this handle's transform and margin

        Raises:
            UnsupportedConversionError: If the conversion is not available
        """
        target = GeometryType.parse(target)
        data = self.data
        if data is None:
            raise InvalidArgumentError("Cannot convert an empty geometry")
        if data.kind == target:
            return self.clone()
        result = Geometry3D(convert_data(data, target, param))
        result._transform = self._transform.copy()
        result._margin = self._margin
        return result

    # ------------------------------------------------------------------
    # Proximity queries
    # ------------------------------------------------------------------

    def acceleration_structure(self) -> Any:
        """The acceleration structure for the current data, built on demand."""
        data = self.data
        if data is None:
            return None
        if self._cache is None or not self._cache.is_current(data):
            self._cache = build_accelerator(data)
        return self._cache.structure

    def cache_is_warm(self) -> bool:
        data = self.data
        return data is not None and self._cache is not None and self._cache.is_current(data)

    def collides(self, other: "Geometry3D") -> bool:
        """Whether the margin-padded geometries overlap."""
        with query_context(operation="collides", kind_a=self.type_name, kind_b=other.type_name):
            return engine.within(Operand.of(self), Operand.of(other), 0.0)

    def within_distance(self, other: "Geometry3D", tol: float) -> bool:
        """Whether the margin-padded geometries are within ``tol`` of each other."""
        with query_context(operation="within_distance", kind_a=self.type_name, kind_b=other.type_name):
            return engine.within(Operand.of(self), Operand.of(other), tol)

    def distance(self, other: "Geometry3D") -> DistanceQueryResult:
        return self.distance_ext(other, DistanceQuerySettings())

    def distance_ext(self, other: "Geometry3D", settings: DistanceQuerySettings) -> DistanceQueryResult:
        """
        Distance to ``other`` with error bounds and an early-out upper bound.
        Negative values are penetration depths where the pair supports them.
        """
        with query_context(operation="distance", kind_a=self.type_name, kind_b=other.type_name):
            return engine.distance(Operand.of(self), Operand.of(other), settings)

    def distance_simple(self, other: "Geometry3D", rel_err: float = 0.0, abs_err: float = 0.0) -> float:
        settings = DistanceQuerySettings(rel_err=rel_err, abs_err=abs_err)
        return self.distance_ext(other, settings).d

    def distance_point(self, pt) -> DistanceQueryResult:
        return self.distance_point_ext(pt, DistanceQuerySettings())

    def distance_point_ext(self, pt, settings: DistanceQuerySettings) -> DistanceQueryResult:
        with query_context(operation="distance_point", kind_a=self.type_name):
            return engine.distance_point(Operand.of(self), pt, settings)

    def ray_cast(self, s, d) -> tuple[bool, Optional[np.ndarray]]:
        """First hit of the ray ``s + t d`` (t >= 0) with the padded geometry."""
        with query_context(operation="ray_cast", kind_a=self.type_name):
            return engine.ray_cast(Operand.of(self), s, d)

    def contacts(
        self,
        other: "Geometry3D",
        padding1: float = 0.0,
        padding2: float = 0.0,
        max_contacts: int = 0,
    ) -> ContactQueryResult:
        """
        Contact patch with ``other``, each padded by its margin plus the
        given padding. ``max_contacts > 0`` clusters the patch.
        """
        with query_context(operation="contacts", kind_a=self.type_name, kind_b=other.type_name):
            return engine.contacts(Operand.of(self), Operand.of(other), padding1, padding2, max_contacts)

    def support(self, direction) -> np.ndarray:
        """Extreme world point of a convex hull along ``direction``."""
        with query_context(operation="support", kind_a=self.type_name):
            return engine.support(Operand.of(self), direction)


def _bounds_of(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    if len(points) == 0:
        return np.full(3, np.inf), np.full(3, -np.inf)
    return points.min(axis=0), points.max(axis=0)


def _corners(lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    return np.array([[x, y, z] for x in (lower[0], upper[0]) for y in (lower[1], upper[1]) for z in (lower[2], upper[2])])
