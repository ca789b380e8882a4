"""
Geometry module - Representation containers and transforms.
"""

from polygeom.geometry.convexhull import ConvexHull
from polygeom.geometry.group import Group
from polygeom.geometry.mesh import TriangleMesh
from polygeom.geometry.pointcloud import PointCloud
from polygeom.geometry.primitive import GeometricPrimitive
from polygeom.geometry.transform import RigidTransform
from polygeom.geometry.types import GeometryType
from polygeom.geometry.volumegrid import VolumeGrid

__all__ = [
    "ConvexHull",
    "GeometricPrimitive",
    "GeometryType",
    "Group",
    "PointCloud",
    "RigidTransform",
    "TriangleMesh",
    "VolumeGrid",
]
