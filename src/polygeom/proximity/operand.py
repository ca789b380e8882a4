"""
World-posed view of a geometry handle as seen by the proximity algorithms.
"""

from dataclasses import dataclass
from typing import Any, List

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.transform import RigidTransform
from polygeom.geometry.types import GeometryType


@dataclass
class Operand:
    """
    A geometry handle together with its world transform and total margin.

    Group children get the composed transform and the sum of the group's and
    the child's margins.
    """

    geometry: Any
    transform: RigidTransform
    margin: float

    @classmethod
    def of(cls, geometry: Any) -> "Operand":
        if geometry.empty():
            raise InvalidArgumentError("Proximity query on an empty geometry")
        return cls(geometry, geometry.get_current_transform_object(), geometry.get_collision_margin())

    @property
    def kind(self) -> GeometryType:
        return self.geometry.type()

    @property
    def data(self) -> Any:
        return self.geometry.data

    @property
    def accel(self) -> Any:
        return self.geometry.acceleration_structure()

    def children(self) -> List["Operand"]:
        out = []
        for child in self.data.children:
            if child.empty():
                continue
            out.append(
                Operand(
                    child,
                    self.transform.compose(child.get_current_transform_object()),
                    self.margin + child.get_collision_margin(),
                )
            )
        return out
