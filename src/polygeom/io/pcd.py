"""
ASCII PCD (Point Cloud Library) reader and writer.

Header fields other than ``x y z`` become property channels; ``VERSION``,
``WIDTH``, ``HEIGHT`` and ``VIEWPOINT`` become the ``version``, ``width``,
``height`` and ``viewpoint`` settings.
"""

from pathlib import Path
from typing import Union

import numpy as np

from polygeom.core.exceptions import IOFailureError
from polygeom.core.logging import get_logger
from polygeom.geometry.pointcloud import PointCloud

_logger = get_logger(__name__)

_HEADER_SETTINGS = {"VERSION": "version", "WIDTH": "width", "HEIGHT": "height", "VIEWPOINT": "viewpoint"}
_DEFAULT_VIEWPOINT = "0 0 0 1 0 0 0"


def read_pcd(file_path: Union[str, Path]) -> PointCloud:
    """
    Read an ASCII PCD file.

    Raises:
        IOFailureError: If the file is missing, binary or malformed
    """
    path = Path(file_path)
    try:
        lines = path.read_text().splitlines()
    except OSError as e:
        raise IOFailureError(f"Failed to read {path}: {e}", path=str(path)) from e

    header: dict[str, list[str]] = {}
    body_start = None
    for number, line in enumerate(lines):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, *values = line.split()
        header[key.upper()] = values
        if key.upper() == "DATA":
            body_start = number + 1
            break

    if body_start is None:
        raise IOFailureError("PCD header has no DATA line", path=str(path))
    if header["DATA"] != ["ascii"]:
        raise IOFailureError(
            "Only ASCII PCD data is supported",
            path=str(path),
            details={"data": " ".join(header["DATA"])},
        )

    fields = header.get("FIELDS", [])
    counts = [int(c) for c in header.get("COUNT", ["1"] * len(fields))]
    columns: list[str] = []
    for name, count in zip(fields, counts):
        columns.extend([name] if count == 1 else [f"{name}_{i}" for i in range(count)])
    if not {"x", "y", "z"} <= set(columns):
        raise IOFailureError("PCD file has no x/y/z fields", path=str(path), details={"fields": fields})

    rows = [line.split() for line in lines[body_start:] if line.strip()]
    try:
        table = np.array(rows, dtype=np.float64).reshape(-1, len(columns))
    except ValueError as e:
        raise IOFailureError(f"Malformed PCD data in {path}: {e}", path=str(path)) from e

    expected = int(header.get("POINTS", [len(table)])[0])
    if expected != len(table):
        raise IOFailureError(
            "PCD point count does not match POINTS",
            path=str(path),
            details={"points": expected, "rows": len(table)},
        )

    xyz = [columns.index(axis) for axis in ("x", "y", "z")]
    names = [c for c in columns if c not in ("x", "y", "z")]
    props = [columns.index(n) for n in names]
    settings = {
        setting: " ".join(header[key]) for key, setting in _HEADER_SETTINGS.items() if key in header
    }
    _logger.debug("pcd_read", path=str(path), points=len(table), properties=names)
    return PointCloud(table[:, xyz], property_names=names, properties=table[:, props], settings=settings)


def write_pcd(cloud: PointCloud, file_path: Union[str, Path]) -> None:
    """
    Write ``cloud`` as ASCII PCD v0.7.

    Raises:
        IOFailureError: If the file cannot be written
    """
    path = Path(file_path)
    n = cloud.num_points()
    structured = cloud.structured_shape()
    width, height = structured if structured is not None else (n, 1)
    fields = ["x", "y", "z", *cloud.property_names]
    header = [
        "# .PCD v0.7 - Point Cloud Data file format",
        f"VERSION {cloud.settings.get('version', '0.7')}",
        "FIELDS " + " ".join(fields),
        "SIZE " + " ".join("4" for _ in fields),
        "TYPE " + " ".join("F" for _ in fields),
        "COUNT " + " ".join("1" for _ in fields),
        f"WIDTH {width}",
        f"HEIGHT {height}",
        f"VIEWPOINT {cloud.settings.get('viewpoint', _DEFAULT_VIEWPOINT)}",
        f"POINTS {n}",
        "DATA ascii",
    ]
    table = np.hstack([cloud.points, cloud.properties.reshape(n, cloud.num_properties())])
    body = [" ".join(repr(float(v)) for v in row) for row in table]
    try:
        path.write_text("\n".join(header + body) + "\n")
    except OSError as e:
        raise IOFailureError(f"Failed to write {path}: {e}", path=str(path)) from e
