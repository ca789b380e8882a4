"""
Extension-keyed loading and saving of geometry files.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Union

from polygeom.core.exceptions import IOFailureError
from polygeom.core.logging import get_logger
from polygeom.geometry.pointcloud import PointCloud
from polygeom.io.geomfile import load_geom, save_geom
from polygeom.io.meshfiles import MeshFileIO
from polygeom.io.pcd import read_pcd, write_pcd

_logger = get_logger(__name__)


def _save_pcd(data: Any, path: Path) -> None:
    if not isinstance(data, PointCloud):
        raise IOFailureError(f"Cannot save {data.kind.value} as .pcd", path=str(path))
    write_pcd(data, path)


LOADERS: Dict[str, Callable[[Path], Any]] = {
    **{ext: MeshFileIO.load for ext in MeshFileIO.SUPPORTED_FORMATS},
    ".pcd": read_pcd,
    ".geom": load_geom,
}

SAVERS: Dict[str, Callable[[Any, Path], None]] = {
    **{ext: MeshFileIO.save for ext in MeshFileIO.SUPPORTED_FORMATS},
    ".pcd": _save_pcd,
    ".geom": save_geom,
}


def load_geometry(file_path: Union[str, Path]) -> Any:
    """
    Load a representation from a file, choosing the reader by extension.

    Args:
        file_path: Path to a .stl/.obj/.ply/.off, .pcd or .geom file

    Returns:
        The loaded representation

    Raises:
        IOFailureError: If the extension is unknown or reading fails
    """
    path = Path(file_path)
    loader = LOADERS.get(path.suffix.lower())
    if loader is None:
        raise IOFailureError(
            f"Unsupported file extension: {path.suffix}",
            path=str(path),
            details={"supported": sorted(LOADERS)},
        )
    if not path.exists():
        raise IOFailureError(f"File not found: {path}", path=str(path))
    data = loader(path)
    _logger.info("geometry_loaded", path=str(path), kind=data.kind.value)
    return data


def save_geometry(data: Any, file_path: Union[str, Path]) -> None:
    """
    Save a representation, choosing the writer by extension.

    Raises:
        IOFailureError: If the extension is unknown, the kind cannot be
            written in that format, or writing fails
    """
    path = Path(file_path)
    saver = SAVERS.get(path.suffix.lower())
    if saver is None:
        raise IOFailureError(
            f"Unsupported file extension: {path.suffix}",
            path=str(path),
            details={"supported": sorted(SAVERS)},
        )
    saver(data, path)
    _logger.info("geometry_saved", path=str(path), kind=data.kind.value)
