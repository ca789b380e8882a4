"""
Mesh file formats through trimesh.
"""

from pathlib import Path
from typing import Any, Union

import numpy as np
import trimesh

from polygeom.core.exceptions import IOFailureError
from polygeom.geometry.mesh import TriangleMesh
from polygeom.geometry.pointcloud import PointCloud


class MeshFileIO:
    """
    Loads and saves triangle meshes (and face-less PLY point sets).

    Supports STL, OBJ, PLY and OFF through trimesh.
    """

    SUPPORTED_FORMATS = {".stl", ".obj", ".ply", ".off"}

    @classmethod
    def load(cls, file_path: Union[str, Path], **kwargs: Any) -> Union[TriangleMesh, PointCloud]:
        """
        Load geometry from file.

        Args:
            file_path: Path to geometry file
            **kwargs: Additional arguments passed to trimesh.load

        Returns:
            TriangleMesh, or PointCloud for a PLY file without faces

        Raises:
            IOFailureError: If file format is unsupported or loading fails
        """
        path = Path(file_path)

        if not path.exists():
            raise IOFailureError(f"File not found: {path}", path=str(path))

        if path.suffix.lower() not in cls.SUPPORTED_FORMATS:
            raise IOFailureError(
                f"Unsupported format: {path.suffix}",
                path=str(path),
                details={"supported": sorted(cls.SUPPORTED_FORMATS)},
            )

        try:
            # process=False keeps the file's vertex order
            loaded = trimesh.load(str(path), process=False, **kwargs)
        except Exception as e:
            raise IOFailureError(f"Failed to load geometry from {path}: {e}", path=str(path)) from e

        # Handle Scene vs Mesh
        if isinstance(loaded, trimesh.Scene):
            meshes = [g for g in loaded.geometry.values() if isinstance(g, trimesh.Trimesh)]
            if not meshes:
                raise IOFailureError(f"No triangle geometry in {path}", path=str(path))
            loaded = trimesh.util.concatenate(meshes)

        if isinstance(loaded, trimesh.PointCloud):
            return PointCloud(np.asarray(loaded.vertices))
        if isinstance(loaded, trimesh.Trimesh):
            if len(loaded.faces) == 0:
                return PointCloud(np.asarray(loaded.vertices))
            return TriangleMesh.from_trimesh(loaded)
        raise IOFailureError(
            f"Unexpected geometry type: {type(loaded).__name__}", path=str(path)
        )

    @classmethod
    def save(cls, data: Union[TriangleMesh, PointCloud], file_path: Union[str, Path], **kwargs: Any) -> None:
        """
        Save a mesh (or a point cloud as PLY) to file.

        Raises:
            IOFailureError: If the data cannot be written in this format
        """
        path = Path(file_path)
        suffix = path.suffix.lower()

        if isinstance(data, TriangleMesh):
            exported = data.to_trimesh()
        elif isinstance(data, PointCloud) and suffix == ".ply":
            exported = trimesh.PointCloud(data.points)
        else:
            raise IOFailureError(
                f"Cannot save {data.kind.value} as {suffix}",
                path=str(path),
            )

        try:
            exported.export(str(path), **kwargs)
        except Exception as e:
            raise IOFailureError(f"Failed to save geometry to {path}: {e}", path=str(path)) from e
