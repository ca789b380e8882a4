"""
Analytic geometric primitives: points, spheres, segments and AABBs.

Text form::

    Point <x> <y> <z>
    Sphere <cx> <cy> <cz> <r>
    Segment <ax> <ay> <az> <bx> <by> <bz>
    AABB <xmin> <ymin> <zmin> <xmax> <ymax> <zmax>
"""

from dataclasses import dataclass, field

import numpy as np

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.base import VersionedData, linear_map
from polygeom.geometry.types import GeometryType, as_vector

POINT = "point"
SPHERE = "sphere"
SEGMENT = "segment"
AABB = "aabb"

# sub-type -> (text keyword, parameter count)
PRIMITIVE_TYPES = {
    POINT: ("Point", 3),
    SPHERE: ("Sphere", 4),
    SEGMENT: ("Segment", 6),
    AABB: ("AABB", 6),
}


@dataclass(eq=False)
class GeometricPrimitive(VersionedData):
    """
    A geometric primitive.

    Attributes:
        type: one of ``point``, ``sphere``, ``segment``, ``aabb``
        properties: parameter vector (see module docstring)
    """

    type: str = POINT
    properties: np.ndarray = field(default_factory=lambda: np.zeros(3))
    version: int = field(default=0, repr=False)

    kind = GeometryType.PRIMITIVE

    def __post_init__(self) -> None:
        self.type = self.type.lower()
        if self.type not in PRIMITIVE_TYPES:
            raise InvalidArgumentError(
                f"Unknown primitive type: {self.type}",
                details={"available": sorted(PRIMITIVE_TYPES)},
            )
        props = np.asarray(self.properties, dtype=np.float64).reshape(-1)
        expected = PRIMITIVE_TYPES[self.type][1]
        if props.size != expected:
            raise InvalidArgumentError(
                f"{self.type} needs {expected} parameters",
                details={"got": int(props.size)},
            )
        self.properties = props.copy()

    # ------------------------------------------------------------------
    # Setters / accessors
    # ------------------------------------------------------------------

    def set_point(self, pt) -> None:
        self._set(POINT, as_vector(pt, "point"))

    def set_sphere(self, center, radius: float) -> None:
        if radius < 0:
            raise InvalidArgumentError("Sphere radius must be non-negative", details={"radius": radius})
        self._set(SPHERE, np.append(as_vector(center, "center"), float(radius)))

    def set_segment(self, a, b) -> None:
        self._set(SEGMENT, np.concatenate([as_vector(a, "a"), as_vector(b, "b")]))

    def set_aabb(self, bmin, bmax) -> None:
        bmin, bmax = as_vector(bmin, "bmin"), as_vector(bmax, "bmax")
        if (bmax < bmin).any():
            raise InvalidArgumentError(
                "AABB bounds are inverted",
                details={"bmin": bmin.tolist(), "bmax": bmax.tolist()},
            )
        self._set(AABB, np.concatenate([bmin, bmax]))

    @property
    def center(self) -> np.ndarray:
        """Point / sphere centre, segment midpoint or box centre."""
        p = self.properties
        if self.type in (POINT, SPHERE):
            return p[:3].copy()
        return 0.5 * (p[:3] + p[3:6])

    @property
    def radius(self) -> float:
        """Sphere radius; 0 for a point."""
        if self.type == SPHERE:
            return float(self.properties[3])
        if self.type == POINT:
            return 0.0
        raise InvalidArgumentError(f"{self.type} has no radius")

    def is_point_like(self) -> bool:
        """Points and spheres reduce to (centre, radius) in proximity queries."""
        return self.type in (POINT, SPHERE)

    def size(self) -> float:
        """Characteristic size: sphere diameter, segment length or box diagonal."""
        p = self.properties
        if self.type == POINT:
            return 0.0
        if self.type == SPHERE:
            return 2.0 * float(p[3])
        return float(np.linalg.norm(p[3:6] - p[:3]))

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        p = self.properties
        if self.type == POINT:
            return p[:3].copy(), p[:3].copy()
        if self.type == SPHERE:
            return p[:3] - p[3], p[:3] + p[3]
        return np.minimum(p[:3], p[3:6]), np.maximum(p[:3], p[3:6])

    def corners(self) -> np.ndarray:
        """The 8 corners of an AABB."""
        if self.type != AABB:
            raise InvalidArgumentError(f"{self.type} has no corners")
        lo, hi = self.properties[:3], self.properties[3:]
        idx = np.array([[i, j, k] for i in (0, 1) for j in (0, 1) for k in (0, 1)])
        return np.where(idx == 0, lo, hi)

    # ------------------------------------------------------------------
    # Text form
    # ------------------------------------------------------------------

    def save_string(self) -> str:
        keyword = PRIMITIVE_TYPES[self.type][0]
        return " ".join([keyword] + [repr(float(v)) for v in self.properties])

    def load_string(self, text: str) -> None:
        """
        Parse the text form.

        Raises:
            InvalidArgumentError: If the string is malformed
        """
        tokens = text.split()
        if not tokens:
            raise InvalidArgumentError("Empty primitive string")
        ptype = tokens[0].lower()
        if ptype not in PRIMITIVE_TYPES:
            raise InvalidArgumentError(
                f"Unknown primitive type: {tokens[0]}",
                details={"available": [v[0] for v in PRIMITIVE_TYPES.values()]},
            )
        expected = PRIMITIVE_TYPES[ptype][1]
        if len(tokens) - 1 != expected:
            raise InvalidArgumentError(
                f"{tokens[0]} needs {expected} parameters",
                details={"got": len(tokens) - 1, "text": text},
            )
        try:
            values = np.array([float(tok) for tok in tokens[1:]])
        except ValueError as e:
            raise InvalidArgumentError(
                f"Malformed primitive parameters: {e}", details={"text": text}
            ) from e
        if ptype == SPHERE and values[3] < 0:
            raise InvalidArgumentError("Sphere radius must be non-negative", details={"text": text})
        if ptype == AABB and (values[3:] < values[:3]).any():
            raise InvalidArgumentError("AABB bounds are inverted", details={"text": text})
        self._set(ptype, values)

    @classmethod
    def from_string(cls, text: str) -> "GeometricPrimitive":
        prim = cls()
        prim.load_string(text)
        prim.version = 0
        return prim

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def transform(self, R, t) -> None:
        """
        Apply ``x = R x + t``.

        Points and segments accept any linear map. Spheres accept
        rotation + uniform scaling. AABBs accept maps that keep the box
        axis-aligned (signed axis permutations times axis scales).

        Raises:
            InvalidArgumentError: If the map cannot be represented exactly
        """
        R, t = linear_map(R, t)
        p = self.properties
        if self.type == POINT:
            new = R @ p + t
        elif self.type == SEGMENT:
            new = np.concatenate([R @ p[:3] + t, R @ p[3:] + t])
        elif self.type == SPHERE:
            s = np.linalg.svd(R, compute_uv=False)
            if not np.allclose(s, s[0]):
                raise InvalidArgumentError(
                    "Spheres only support rotation and uniform scaling",
                    details={"singular_values": s.tolist()},
                )
            new = np.append(R @ p[:3] + t, p[3] * s[0])
        else:
            if (np.count_nonzero(np.abs(R) > 1e-12, axis=0) != 1).any() or (
                np.count_nonzero(np.abs(R) > 1e-12, axis=1) != 1
            ).any():
                raise InvalidArgumentError(
                    "AABBs only support axis-aligned maps",
                    details={"R": R.tolist()},
                )
            a, b = R @ p[:3] + t, R @ p[3:] + t
            new = np.concatenate([np.minimum(a, b), np.maximum(a, b)])
        self.properties = new
        self.mark_modified()

    def _set(self, ptype: str, values: np.ndarray) -> None:
        self.type = ptype
        self.properties = np.asarray(values, dtype=np.float64)
        self.mark_modified()
