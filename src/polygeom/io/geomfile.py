"""
``.geom`` YAML documents.

Each document holds one representation, keyed by its kind::

    type: GeometricPrimitive
    primitive: Sphere 0.0 0.0 0.0 1.0

Groups nest their elements together with each element's pose and margin::

    type: Group
    elements:
      - transform: {R: [[1, 0, 0], [0, 1, 0], [0, 0, 1]], t: [0, 0, 1]}
        margin: 0.0
        geometry: {type: ConvexHull, points: [[0, 0, 0], ...]}
"""

from pathlib import Path
from typing import Any, Union

import numpy as np
import yaml

from polygeom.core.exceptions import InvalidArgumentError, IOFailureError, PolygeomError
from polygeom.geometry.convexhull import ConvexHull
from polygeom.geometry.group import Group
from polygeom.geometry.mesh import TriangleMesh
from polygeom.geometry.pointcloud import PointCloud
from polygeom.geometry.primitive import GeometricPrimitive
from polygeom.geometry.types import GeometryType
from polygeom.geometry.volumegrid import VolumeGrid


def to_document(data: Any) -> dict:
    """Plain-YAML mapping describing ``data``."""
    kind = data.kind
    doc: dict[str, Any] = {"type": kind.value}
    if kind == GeometryType.PRIMITIVE:
        doc["primitive"] = data.save_string()
    elif kind == GeometryType.TRIANGLE_MESH:
        doc["vertices"] = data.vertices.tolist()
        doc["indices"] = data.indices.tolist()
    elif kind == GeometryType.POINT_CLOUD:
        doc["points"] = data.points.tolist()
        doc["properties"] = {"names": list(data.property_names), "values": data.properties.tolist()}
        doc["settings"] = dict(data.settings)
    elif kind == GeometryType.VOLUME_GRID:
        doc["bmin"] = data.bmin.tolist()
        doc["bmax"] = data.bmax.tolist()
        doc["dims"] = list(data.dims)
        doc["values"] = data.values.ravel().tolist()
    elif kind == GeometryType.CONVEX_HULL:
        doc["points"] = data.points.tolist()
    else:
        doc["elements"] = [_element_document(child) for child in data.children]
    return doc


def _element_document(child) -> dict:
    R, t = child.get_current_transform()
    return {
        "transform": {"R": np.asarray(R).tolist(), "t": np.asarray(t).tolist()},
        "margin": child.get_collision_margin(),
        "geometry": None if child.empty() else to_document(child.data),
    }


def from_document(doc: dict) -> Any:
    """
    Rebuild a representation from :func:`to_document` output.

    Raises:
        InvalidArgumentError: If the document is malformed
    """
    if not isinstance(doc, dict) or "type" not in doc:
        raise InvalidArgumentError("Geometry document must be a mapping with a 'type' key")
    kind = GeometryType.parse(doc["type"])
    try:
        if kind == GeometryType.PRIMITIVE:
            return GeometricPrimitive.from_string(doc["primitive"])
        if kind == GeometryType.TRIANGLE_MESH:
            return TriangleMesh(doc.get("vertices", []), doc.get("indices", []))
        if kind == GeometryType.POINT_CLOUD:
            props = doc.get("properties") or {}
            return PointCloud(
                doc.get("points", []),
                property_names=props.get("names", []),
                properties=props.get("values", []),
                settings=doc.get("settings") or {},
            )
        if kind == GeometryType.VOLUME_GRID:
            return VolumeGrid.from_flat(
                list(doc["bmin"]) + list(doc["bmax"]), doc["dims"], doc.get("values", [])
            )
        if kind == GeometryType.CONVEX_HULL:
            return ConvexHull(doc.get("points", []))
        return Group([_element_from_document(e) for e in doc.get("elements", [])])
    except KeyError as e:
        raise InvalidArgumentError(
            f"Geometry document is missing key {e}", details={"type": kind.value}
        ) from e


def _element_from_document(element: dict):
    from polygeom.geometry3d import Geometry3D

    child = Geometry3D()
    if element.get("geometry") is not None:
        child.set_data(from_document(element["geometry"]))
    transform = element.get("transform") or {}
    if transform:
        child.set_current_transform(transform["R"], transform["t"])
    child.set_collision_margin(float(element.get("margin", 0.0)))
    return child


def load_geom(file_path: Union[str, Path]) -> Any:
    """
    Read a ``.geom`` file.

    Raises:
        IOFailureError: If the file cannot be read or parsed
    """
    path = Path(file_path)
    try:
        with open(path) as f:
            doc = yaml.safe_load(f)
        return from_document(doc)
    except (OSError, yaml.YAMLError, PolygeomError) as e:
        raise IOFailureError(f"Failed to load geometry from {path}: {e}", path=str(path)) from e


def save_geom(data: Any, file_path: Union[str, Path]) -> None:
    """
    Write ``data`` as a ``.geom`` file.

    Raises:
        IOFailureError: If the file cannot be written
    """
    path = Path(file_path)
    try:
        with open(path, "w") as f:
            yaml.safe_dump(to_document(data), f, sort_keys=False)
    except (OSError, yaml.YAMLError) as e:
        raise IOFailureError(f"Failed to save geometry to {path}: {e}", path=str(path)) from e
