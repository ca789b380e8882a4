"""
Rigid transforms used as the "current" transform of geometry handles.

The current transform is applied virtually: queries map world-space inputs
into the local frame of the stored data instead of rewriting the data.
"""

from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.transform import Rotation

from polygeom.geometry.types import as_matrix, as_vector


@dataclass
class RigidTransform:
    """
    Rotation + translation pair, ``x_world = R @ x_local + t``.

    Attributes:
        R: 3x3 rotation matrix
        t: translation vector
    """

    R: np.ndarray = field(default_factory=lambda: np.eye(3))
    t: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.R = as_matrix(self.R, "R")
        self.t = as_vector(self.t, "t")

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @classmethod
    def from_matrix(cls, matrix) -> "RigidTransform":
        """Build from a 4x4 homogeneous matrix."""
        matrix = np.asarray(matrix, dtype=np.float64)
        return cls(matrix[:3, :3], matrix[:3, 3])

    @classmethod
    def from_axis_angle(cls, axis, angle: float, translation=(0.0, 0.0, 0.0)) -> "RigidTransform":
        """Rotation of ``angle`` radians about ``axis`` followed by ``translation``."""
        axis = np.asarray(axis, dtype=np.float64)
        axis = axis / np.linalg.norm(axis)
        return cls(Rotation.from_rotvec(axis * angle).as_matrix(), translation)

    def matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix."""
        out = np.eye(4)
        out[:3, :3] = self.R
        out[:3, 3] = self.t
        return out

    def is_identity(self, tol: float = 1e-12) -> bool:
        return bool(np.allclose(self.R, np.eye(3), atol=tol) and np.allclose(self.t, 0.0, atol=tol))

    def compose(self, other: "RigidTransform") -> "RigidTransform":
        """Return ``self * other`` (apply ``other`` first)."""
        return RigidTransform(self.R @ other.R, self.R @ other.t + self.t)

    def inverse(self) -> "RigidTransform":
        Rt = self.R.T
        return RigidTransform(Rt, -Rt @ self.t)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Map local points (n, 3) or a single point (3,) to world coordinates."""
        points = np.asarray(points, dtype=np.float64)
        return points @ self.R.T + self.t

    def apply_inverse(self, points: np.ndarray) -> np.ndarray:
        """Map world points to local coordinates."""
        points = np.asarray(points, dtype=np.float64)
        return (points - self.t) @ self.R

    def apply_vector(self, vectors: np.ndarray) -> np.ndarray:
        """Rotate directions/normals (no translation)."""
        return np.asarray(vectors, dtype=np.float64) @ self.R.T

    def apply_inverse_vector(self, vectors: np.ndarray) -> np.ndarray:
        return np.asarray(vectors, dtype=np.float64) @ self.R

    def copy(self) -> "RigidTransform":
        return RigidTransform(self.R.copy(), self.t.copy())

    def as_tuple(self) -> tuple[np.ndarray, np.ndarray]:
        return self.R.copy(), self.t.copy()
