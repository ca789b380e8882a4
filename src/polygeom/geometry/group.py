"""
Group container: an ordered list of child geometry handles.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List

import numpy as np

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.base import VersionedData, linear_map
from polygeom.geometry.transform import RigidTransform
from polygeom.geometry.types import GeometryType

if TYPE_CHECKING:
    from polygeom.geometry3d import Geometry3D


@dataclass(eq=False)
class Group(VersionedData):
    """
    Ordered child geometries. Each child's current transform is its pose in
    the group's local frame.
    """

    children: List["Geometry3D"] = field(default_factory=list)
    version: int = field(default=0, repr=False)

    kind = GeometryType.GROUP

    def num_elements(self) -> int:
        return len(self.children)

    def get_element(self, index: int) -> "Geometry3D":
        self._check_index(index)
        return self.children[index]

    def set_element(self, index: int, child: "Geometry3D") -> None:
        """Set child ``index``; ``index == num_elements()`` appends."""
        if index == len(self.children):
            self.children.append(child)
        else:
            self._check_index(index)
            self.children[index] = child
        self.mark_modified()

    def copy(self) -> "Group":
        return Group([child.clone() for child in self.children])

    def transform(self, R, t) -> None:
        """
        Rigid maps are prepended to each child's pose. Uniform scaling scales
        child positions and child data.

        Raises:
            InvalidArgumentError: For reflections, shear or non-uniform scaling
        """
        R, t = linear_map(R, t)
        det = float(np.linalg.det(R))
        scale = det ** (1.0 / 3.0) if det > 0 else 0.0
        rotation = R / scale if scale > 0 else R
        if scale <= 0 or not np.allclose(rotation @ rotation.T, np.eye(3), atol=1e-9):
            raise InvalidArgumentError(
                "Groups only support rigid maps and uniform scaling",
                details={"R": R.tolist()},
            )
        outer = RigidTransform(rotation, t)
        for child in self.children:
            pose = child.get_current_transform_object()
            if not np.isclose(scale, 1.0):
                # Committing the scale resets the child's pose, so reapply it
                child.scale(scale)
                pose = RigidTransform(pose.R, pose.t * scale)
            child.set_current_transform(*outer.compose(pose).as_tuple())
        self.mark_modified()

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.children):
            raise InvalidArgumentError(
                "Group element index out of range",
                details={"index": index, "num_elements": len(self.children)},
            )
