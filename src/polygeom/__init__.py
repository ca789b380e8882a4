"""
polygeom - Unified 3D geometry handles with proximity queries and conversions

One handle type (Geometry3D) over triangle meshes, point clouds, volume grids,
convex hulls, analytic primitives and groups, with collision, distance,
contact, ray-cast and support queries and conversions between the kinds.
"""

__version__ = "0.1.0"
__author__ = "polygeom Contributors"

from polygeom.core.config import DistanceQuerySettings
from polygeom.geometry import (
    ConvexHull,
    GeometricPrimitive,
    GeometryType,
    Group,
    PointCloud,
    RigidTransform,
    TriangleMesh,
    VolumeGrid,
)
from polygeom.geometry3d import Geometry3D, Ownership
from polygeom.proximity.results import ContactQueryResult, DistanceQueryResult

__all__ = [
    "__version__",
    "Geometry3D",
    "Ownership",
    "GeometryType",
    "ConvexHull",
    "GeometricPrimitive",
    "Group",
    "PointCloud",
    "RigidTransform",
    "TriangleMesh",
    "VolumeGrid",
    "DistanceQuerySettings",
    "DistanceQueryResult",
    "ContactQueryResult",
]
