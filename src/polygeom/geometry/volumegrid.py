"""
Axis-aligned volumetric grid container.

Values are cell-centred. A signed distance grid is negative inside and
positive outside; an occupancy grid stores 1 inside and 0 outside.
"""

from dataclasses import dataclass, field

import numpy as np

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.base import VersionedData, linear_map
from polygeom.geometry.types import GeometryType, as_vector


@dataclass(eq=False)
class VolumeGrid(VersionedData):
    """
    An axis-aligned volumetric grid.

    Attributes:
        bmin: lower corner of the bounding box
        bmax: upper corner of the bounding box
        values: (nx, ny, nz) cell values; ``values.ravel()`` follows the
            flattened index ``i*ny*nz + j*nz + k``
    """

    bmin: np.ndarray = field(default_factory=lambda: np.zeros(3))
    bmax: np.ndarray = field(default_factory=lambda: np.zeros(3))
    values: np.ndarray = field(default_factory=lambda: np.zeros((0, 0, 0)))
    version: int = field(default=0, repr=False)

    kind = GeometryType.VOLUME_GRID

    def __post_init__(self) -> None:
        self.bmin = as_vector(self.bmin, "bmin")
        self.bmax = as_vector(self.bmax, "bmax")
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim != 3:
            raise InvalidArgumentError(
                "Grid values must be a 3D array", details={"shape": tuple(values.shape)}
            )
        self.values = values.copy()
        if (self.bmax < self.bmin).any():
            raise InvalidArgumentError(
                "Grid bounds are inverted",
                details={"bmin": self.bmin.tolist(), "bmax": self.bmax.tolist()},
            )

    @classmethod
    def from_flat(cls, bbox, dims, values) -> "VolumeGrid":
        """Build from a 6-entry bbox, 3 dims and a flattened value list."""
        bbox = np.asarray(bbox, dtype=np.float64).reshape(6)
        dims = tuple(int(d) for d in dims)
        flat = np.asarray(values, dtype=np.float64).reshape(-1)
        if flat.size != int(np.prod(dims)):
            raise InvalidArgumentError(
                "Grid value count does not match dims",
                details={"values": int(flat.size), "dims": dims},
            )
        return cls(bbox[:3], bbox[3:], flat.reshape(dims))

    @property
    def dims(self) -> tuple[int, int, int]:
        return tuple(int(d) for d in self.values.shape)

    @property
    def bbox(self) -> np.ndarray:
        """(xmin, ymin, zmin, xmax, ymax, zmax)."""
        return np.concatenate([self.bmin, self.bmax])

    def cell_size(self) -> np.ndarray:
        dims = np.maximum(np.array(self.dims), 1)
        return (self.bmax - self.bmin) / dims

    def axes(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Cell-centre coordinates along each axis."""
        size = self.cell_size()
        return tuple(
            self.bmin[a] + (np.arange(self.dims[a]) + 0.5) * size[a] for a in range(3)
        )

    def cell_centers(self) -> np.ndarray:
        """(nx*ny*nz, 3) cell centres in flattened-index order."""
        xs, ys, zs = self.axes()
        grid = np.stack(np.meshgrid(xs, ys, zs, indexing="ij"), axis=-1)
        return grid.reshape(-1, 3)

    def set_bounds(self, bmin, bmax) -> None:
        bmin, bmax = as_vector(bmin, "bmin"), as_vector(bmax, "bmax")
        if (bmax < bmin).any():
            raise InvalidArgumentError(
                "Grid bounds are inverted",
                details={"bmin": bmin.tolist(), "bmax": bmax.tolist()},
            )
        self.bmin, self.bmax = bmin, bmax
        self.mark_modified()

    def resize(self, nx: int, ny: int, nz: int) -> None:
        """Resize the grid; all values are reset to 0."""
        if min(nx, ny, nz) < 0:
            raise InvalidArgumentError("Grid dims must be non-negative", details={"dims": (nx, ny, nz)})
        self.values = np.zeros((nx, ny, nz))
        self.mark_modified()

    def set_all(self, value: float) -> None:
        self.values.fill(float(value))
        self.mark_modified()

    def set_value(self, i: int, j: int, k: int, value: float) -> None:
        self._check_cell(i, j, k)
        self.values[i, j, k] = float(value)
        self.mark_modified()

    def get_value(self, i: int, j: int, k: int) -> float:
        self._check_cell(i, j, k)
        return float(self.values[i, j, k])

    def shift(self, dv: float) -> None:
        """Add ``dv`` to every value (moves the zero level set)."""
        self.values += float(dv)
        self.mark_modified()

    def transform(self, R, t) -> None:
        """
        Apply a translation and positive per-axis scaling to the bounds.

        Only the bounding box changes; cell values are not resampled or
        rescaled.

        Raises:
            InvalidArgumentError: For rotations, shears or non-positive scales
        """
        R, t = linear_map(R, t)
        diagonal = np.diag(np.diag(R))
        if not np.allclose(R, diagonal) or (np.diag(R) <= 0).any():
            raise InvalidArgumentError(
                "VolumeGrid data only supports translation and positive axis scaling",
                details={"R": R.tolist()},
            )
        scale = np.diag(R)
        self.bmin = self.bmin * scale + t
        self.bmax = self.bmax * scale + t
        self.mark_modified()

    def _check_cell(self, i: int, j: int, k: int) -> None:
        nx, ny, nz = self.dims
        if not (0 <= i < nx and 0 <= j < ny and 0 <= k < nz):
            raise InvalidArgumentError(
                "Grid cell index out of range",
                details={"index": (i, j, k), "dims": self.dims},
            )
