"""
Point cloud container with per-point property channels.

Properties follow the PCL naming convention, e.g. ``normal_x``, ``normal_y``,
``normal_z``, ``rgb``, ``rgba``, ``opacity``, ``r``, ``g``, ``b``, ``u``,
``v``. Settings are free-form strings such as ``version``, ``width``,
``height`` and ``viewpoint`` ("ox oy oz qw qx qy qz").
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union

import numpy as np

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.base import VersionedData, linear_map
from polygeom.geometry.types import GeometryType, as_points, as_vector

PropertyKey = Union[int, str]

NORMAL_CHANNELS = ("normal_x", "normal_y", "normal_z")


@dataclass(eq=False)
class PointCloud(VersionedData):
    """
    A 3D point cloud.

    Attributes:
        points: (n, 3) point coordinates
        property_names: names of the k property channels
        properties: (n, k) property values, one value per point per channel
        settings: string metadata passed through uninterpreted
    """

    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    property_names: List[str] = field(default_factory=list)
    properties: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    settings: Dict[str, str] = field(default_factory=dict)
    version: int = field(default=0, repr=False)

    kind = GeometryType.POINT_CLOUD

    def __post_init__(self) -> None:
        self.points = as_points(self.points)
        self.property_names = list(self.property_names)
        props = np.asarray(self.properties, dtype=np.float64)
        if props.size == 0:
            props = np.zeros((len(self.points), len(self.property_names)))
        elif props.ndim == 1:
            # Flat point-major list [p11, p21, ..., pk1, p12, ...]
            if props.size != len(self.points) * len(self.property_names):
                raise InvalidArgumentError(
                    "Flat property list must hold one value per point per channel",
                    details={"size": int(props.size), "points": len(self.points),
                             "channels": len(self.property_names)},
                )
            props = props.reshape(len(self.points), len(self.property_names))
        if props.shape != (len(self.points), len(self.property_names)):
            raise InvalidArgumentError(
                "Property array must have shape (num_points, num_properties)",
                details={"shape": tuple(props.shape)},
            )
        self.properties = props.copy()
        self.settings = {str(k): str(v) for k, v in self.settings.items()}

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def num_points(self) -> int:
        return len(self.points)

    def num_properties(self) -> int:
        return len(self.property_names)

    def set_points(self, points) -> None:
        """Replace all points; properties are reset to zero."""
        self.points = as_points(points)
        self.properties = np.zeros((len(self.points), len(self.property_names)))
        self.mark_modified()

    def add_point(self, point) -> int:
        """Append a point whose properties are all 0. Returns its index."""
        self.points = np.vstack([self.points, as_vector(point, "point")])
        self.properties = np.vstack(
            [self.properties, np.zeros((1, len(self.property_names)))]
        )
        self.mark_modified()
        return len(self.points) - 1

    def set_point(self, index: int, point) -> None:
        self._check_point_index(index)
        self.points[index] = as_vector(point, "point")
        self.mark_modified()

    def get_point(self, index: int) -> np.ndarray:
        self._check_point_index(index)
        return self.points[index].copy()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def add_property(self, name: str, values=None) -> None:
        """Add a property channel, filled with ``values`` or zeros."""
        if name in self.property_names:
            raise InvalidArgumentError(f"Property already exists: {name}")
        if values is None:
            column = np.zeros(len(self.points))
        else:
            column = self._channel(values)
        self.property_names.append(name)
        self.properties = np.column_stack([self.properties, column])
        self.mark_modified()

    def set_properties(self, values, pindex: PropertyKey | None = None) -> None:
        """
        Set property values.

        With ``pindex`` None, ``values`` holds every property of every point
        (an (n, k) array or a flat point-major list); otherwise it holds one
        channel (n values).
        """
        if pindex is None:
            arr = np.asarray(values, dtype=np.float64)
            expected = (len(self.points), len(self.property_names))
            if arr.size != expected[0] * expected[1]:
                raise InvalidArgumentError(
                    "Property values must hold one value per point per channel",
                    details={"size": int(arr.size), "expected": expected},
                )
            self.properties = arr.reshape(expected).copy()
        else:
            self.properties[:, self.property_index(pindex)] = self._channel(values)
        self.mark_modified()

    def set_property(self, index: int, pindex: PropertyKey, value: float) -> None:
        self._check_point_index(index)
        self.properties[index, self.property_index(pindex)] = float(value)
        self.mark_modified()

    def get_property(self, index: int, pindex: PropertyKey) -> float:
        self._check_point_index(index)
        return float(self.properties[index, self.property_index(pindex)])

    def get_properties(self, pindex: PropertyKey) -> np.ndarray:
        """All values of one channel."""
        return self.properties[:, self.property_index(pindex)].copy()

    def property_index(self, pindex: PropertyKey) -> int:
        """Resolve a channel name or index to an index."""
        if isinstance(pindex, str):
            if pindex not in self.property_names:
                raise InvalidArgumentError(
                    f"Unknown property: {pindex}",
                    details={"available": list(self.property_names)},
                )
            return self.property_names.index(pindex)
        if not 0 <= int(pindex) < len(self.property_names):
            raise InvalidArgumentError(
                "Property index out of range",
                details={"index": int(pindex), "num_properties": len(self.property_names)},
            )
        return int(pindex)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_setting(self, key: str, value: str) -> None:
        self.settings[str(key)] = str(value)

    def get_setting(self, key: str) -> str:
        if key not in self.settings:
            raise InvalidArgumentError(
                f"Unknown setting: {key}", details={"available": sorted(self.settings)}
            )
        return self.settings[key]

    def structured_shape(self) -> tuple[int, int] | None:
        """(width, height) of a structured cloud, or None if unstructured."""
        try:
            width = int(self.settings.get("width", "0"))
            height = int(self.settings.get("height", "0"))
        except ValueError:
            return None
        if width <= 0 or height <= 1 or width * height != len(self.points):
            return None
        return width, height

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def transform(self, R, t) -> None:
        """Apply ``p = R p + t`` to all points; normal channels are rotated too."""
        R, t = linear_map(R, t)
        self.points = self.points @ R.T + t
        if all(name in self.property_names for name in NORMAL_CHANNELS):
            cols = [self.property_names.index(name) for name in NORMAL_CHANNELS]
            normals = self.properties[:, cols] @ np.linalg.inv(R)
            lengths = np.linalg.norm(normals, axis=1)
            ok = lengths > 0
            normals[ok] /= lengths[ok, None]
            self.properties[:, cols] = normals
        self.mark_modified()

    def join(self, other: "PointCloud") -> None:
        """
        Append the points and properties of ``other``.

        Raises:
            InvalidArgumentError: If the property channel names differ
        """
        if list(other.property_names) != list(self.property_names):
            raise InvalidArgumentError(
                "Cannot join point clouds with different properties",
                details={"self": list(self.property_names), "other": list(other.property_names)},
            )
        self.points = np.vstack([self.points, other.points])
        self.properties = np.vstack([self.properties, other.properties])
        if "width" in self.settings or "height" in self.settings:
            # Concatenation destroys the row structure
            self.settings["width"] = str(len(self.points))
            self.settings["height"] = "1"
        self.mark_modified()

    def _check_point_index(self, index: int) -> None:
        if not 0 <= index < len(self.points):
            raise InvalidArgumentError(
                "Point index out of range",
                details={"index": index, "num_points": len(self.points)},
            )

    def _channel(self, values) -> np.ndarray:
        column = np.asarray(values, dtype=np.float64).reshape(-1)
        if len(column) != len(self.points):
            raise InvalidArgumentError(
                "Property channel must have one value per point",
                details={"values": len(column), "num_points": len(self.points)},
            )
        return column
