"""
Geometry file input/output.
"""

from polygeom.io.files import load_geometry, save_geometry
from polygeom.io.geomfile import from_document, to_document
from polygeom.io.meshfiles import MeshFileIO
from polygeom.io.pcd import read_pcd, write_pcd

__all__ = [
    "load_geometry",
    "save_geometry",
    "from_document",
    "to_document",
    "MeshFileIO",
    "read_pcd",
    "write_pcd",
]
