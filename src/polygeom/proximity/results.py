"""
Result types of distance and contact queries.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass
class DistanceQueryResult:
    """
    Result of a distance or distance-to-point query.

    Attributes:
        d: the distance; negative values indicate penetration. May equal the
            query's ``upper_bound``, meaning "at least ``upper_bound``".
        has_closest_points: whether ``cp1``/``cp2``/``elem1``/``elem2`` are set
        has_gradients: whether ``grad1``/``grad2`` are set
        cp1, cp2: closest points on self and on the other object, in world
            coordinates
        grad1, grad2: gradients of the objects' distance fields at the closest
            points, in world coordinates (``grad2 == -grad1``)
        elem1, elem2: element indices for compound objects (group child,
            triangle or point index), -1 when not applicable. For a group
            this is the index of the winning child; the triangle or point
            index inside that child is not reported.
    """

    d: float
    has_closest_points: bool = False
    has_gradients: bool = False
    cp1: Optional[np.ndarray] = None
    cp2: Optional[np.ndarray] = None
    grad1: Optional[np.ndarray] = None
    grad2: Optional[np.ndarray] = None
    elem1: int = -1
    elem2: int = -1

    def swapped(self) -> "DistanceQueryResult":
        """The same result seen from the other object."""
        return DistanceQueryResult(
            d=self.d,
            has_closest_points=self.has_closest_points,
            has_gradients=self.has_gradients,
            cp1=self.cp2,
            cp2=self.cp1,
            grad1=self.grad2,
            grad2=self.grad1,
            elem1=self.elem2,
            elem2=self.elem1,
        )


def _points() -> np.ndarray:
    return np.zeros((0, 3))


def _ints() -> np.ndarray:
    return np.zeros(0, dtype=np.int64)


@dataclass
class ContactQueryResult:
    """
    Discrete contact patch between two padded geometries.

    Attributes:
        depths: (n,) penetration depths w.r.t. the padded geometry, >= 0
        points1, points2: (n, 3) contact points on self and other (on the
            padded surfaces), world coordinates
        normals: (n, 3) outward contact normals from self to other; a zero
            row means the normal could not be computed
        elems1, elems2: (n,) element indices for compound objects; for a
            group each entry is the child index, replacing the triangle or
            point index inside that child
    """

    depths: np.ndarray = field(default_factory=lambda: np.zeros(0))
    points1: np.ndarray = field(default_factory=_points)
    points2: np.ndarray = field(default_factory=_points)
    normals: np.ndarray = field(default_factory=_points)
    elems1: np.ndarray = field(default_factory=_ints)
    elems2: np.ndarray = field(default_factory=_ints)

    def __len__(self) -> int:
        return len(self.depths)

    def swapped(self) -> "ContactQueryResult":
        return ContactQueryResult(
            depths=self.depths,
            points1=self.points2,
            points2=self.points1,
            normals=-self.normals,
            elems1=self.elems2,
            elems2=self.elems1,
        )

    def subset(self, index: np.ndarray) -> "ContactQueryResult":
        return ContactQueryResult(
            depths=self.depths[index],
            points1=self.points1[index],
            points2=self.points2[index],
            normals=self.normals[index],
            elems1=self.elems1[index],
            elems2=self.elems2[index],
        )

    @classmethod
    def concatenate(cls, results: list["ContactQueryResult"]) -> "ContactQueryResult":
        if not results:
            return cls()
        return cls(
            depths=np.concatenate([r.depths for r in results]),
            points1=np.vstack([r.points1 for r in results]),
            points2=np.vstack([r.points2 for r in results]),
            normals=np.vstack([r.normals for r in results]),
            elems1=np.concatenate([r.elems1 for r in results]),
            elems2=np.concatenate([r.elems2 for r in results]),
        )


@dataclass
class RawContacts:
    """
    Contact candidates produced by pair algorithms, before padding.

    ``distances`` are the signed raw separations between ``points_a`` and
    ``points_b`` (negative when penetrating). ``normals`` may be None, in which
    case they are derived from the point pairs.
    """

    points_a: np.ndarray = field(default_factory=_points)
    points_b: np.ndarray = field(default_factory=_points)
    distances: np.ndarray = field(default_factory=lambda: np.zeros(0))
    elems_a: np.ndarray = field(default_factory=_ints)
    elems_b: np.ndarray = field(default_factory=_ints)
    normals: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self.distances)

    def swapped(self) -> "RawContacts":
        return RawContacts(
            points_a=self.points_b,
            points_b=self.points_a,
            distances=self.distances,
            elems_a=self.elems_b,
            elems_b=self.elems_a,
            normals=None if self.normals is None else -self.normals,
        )

    @classmethod
    def single(cls, result: DistanceQueryResult) -> "RawContacts":
        """One contact from the closest points of a distance result."""
        return cls(
            points_a=np.asarray(result.cp1, dtype=np.float64).reshape(1, 3),
            points_b=np.asarray(result.cp2, dtype=np.float64).reshape(1, 3),
            distances=np.array([result.d]),
            elems_a=np.array([result.elem1], dtype=np.int64),
            elems_b=np.array([result.elem2], dtype=np.int64),
            normals=None if result.grad1 is None else -np.asarray(result.grad1).reshape(1, 3),
        )

    @classmethod
    def concatenate(cls, parts: list["RawContacts"]) -> "RawContacts":
        parts = [p for p in parts if len(p)]
        if not parts:
            return cls()
        with_normals = all(p.normals is not None for p in parts)
        return cls(
            points_a=np.vstack([p.points_a for p in parts]),
            points_b=np.vstack([p.points_b for p in parts]),
            distances=np.concatenate([p.distances for p in parts]),
            elems_a=np.concatenate([p.elems_a for p in parts]),
            elems_b=np.concatenate([p.elems_b for p in parts]),
            normals=np.vstack([p.normals for p in parts]) if with_normals else None,
        )
