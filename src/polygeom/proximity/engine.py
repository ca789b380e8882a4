"""
Proximity query engine.

Resolves groups by recursion, looks up the pair or single-geometry
algorithm in the dispatch table, swaps operands for reversed lookups and
applies collision margins to the margin-free algorithm results.
"""

from typing import Callable, Optional

import numpy as np

from polygeom.core.config import DistanceQuerySettings, get_config
from polygeom.core.exceptions import InvalidArgumentError
from polygeom.core.logging import get_logger
from polygeom.geometry.types import GeometryType, as_vector, unit
from polygeom.proximity import pairs as _pairs  # noqa: F401
from polygeom.proximity.contacts import assemble_contacts, cluster_contacts
from polygeom.proximity.dispatch import QUERY_TABLE, QueryOp
from polygeom.proximity.operand import Operand
from polygeom.proximity.results import ContactQueryResult, DistanceQueryResult

_logger = get_logger(__name__)


def _lookup(op: QueryOp, a: Operand, b: Optional[Operand] = None) -> tuple[Callable, bool]:
    fn, swapped = QUERY_TABLE.lookup(op, a.kind, None if b is None else b.kind)
    _logger.debug(
        "query_dispatched",
        operation=op.value,
        kind_a=a.kind.value,
        kind_b=None if b is None else b.kind.value,
        algorithm=fn.__name__,
        swapped=swapped,
    )
    return fn, swapped


def _apply_margins(
    result: DistanceQueryResult,
    margin_a: float,
    margin_b: float,
    settings: DistanceQuerySettings,
) -> DistanceQueryResult:
    d = result.d - (margin_a + margin_b)
    if d > settings.upper_bound:
        return DistanceQueryResult(d=float(settings.upper_bound))
    result.d = float(d)
    if result.has_closest_points and result.grad2 is not None:
        result.cp1 = result.cp1 + result.grad2 * margin_a
        result.cp2 = result.cp2 - result.grad2 * margin_b
    return result


def _raw_settings(settings: DistanceQuerySettings, margins: float) -> DistanceQuerySettings:
    return settings.model_copy(update={"upper_bound": settings.upper_bound + margins})


# ----------------------------------------------------------------------
# Pair queries
# ----------------------------------------------------------------------


def within(a: Operand, b: Operand, tol: float = 0.0) -> bool:
    """
    Whether the margin-padded geometries are within ``tol`` of each other;
    ``tol == 0`` is a collision test.
    """
    if a.kind == GeometryType.GROUP:
        return any(within(child, b, tol) for child in a.children())
    if b.kind == GeometryType.GROUP:
        return any(within(a, child, tol) for child in b.children())
    fn, swapped = _lookup(QueryOp.WITHIN, a, b)
    threshold = a.margin + b.margin + tol
    return bool(fn(b, a, threshold) if swapped else fn(a, b, threshold))


def distance(a: Operand, b: Operand, settings: Optional[DistanceQuerySettings] = None) -> DistanceQueryResult:
    """
    Distance between two geometries after subtracting both margins.

    Group results report the winning child index in ``elem1``/``elem2``, in
    place of the child's own triangle or point index.
    """
    settings = settings or DistanceQuerySettings()
    if a.kind == GeometryType.GROUP:
        return _closest_child(a.children(), lambda child: distance(child, b, settings), settings, first=True)
    if b.kind == GeometryType.GROUP:
        return _closest_child(b.children(), lambda child: distance(a, child, settings), settings, first=False)
    fn, swapped = _lookup(QueryOp.DISTANCE, a, b)
    raw = _raw_settings(settings, a.margin + b.margin)
    result = fn(b, a, raw).swapped() if swapped else fn(a, b, raw)
    return _apply_margins(result, a.margin, b.margin, settings)


def _closest_child(
    children: list[Operand],
    query: Callable[[Operand], DistanceQueryResult],
    settings: DistanceQuerySettings,
    first: bool,
) -> DistanceQueryResult:
    best = DistanceQueryResult(d=float(settings.upper_bound))
    for index, child in enumerate(children):
        result = query(child)
        if first:
            result.elem1 = index
        else:
            result.elem2 = index
        if result.d < best.d or (result.d == best.d and not best.has_closest_points):
            best = result
    return best


def contacts(
    a: Operand,
    b: Operand,
    padding_a: float = 0.0,
    padding_b: float = 0.0,
    max_contacts: int = 0,
) -> ContactQueryResult:
    """
    Contact patch between the geometries padded by their margins plus
    ``padding_a``/``padding_b``. With ``max_contacts > 0`` the patch is
    clustered down to at most that many contacts. Contacts with a group
    carry the child index in ``elems1``/``elems2``.
    """
    result = _contacts(a, b, padding_a, padding_b)
    return cluster_contacts(result, max_contacts, get_config().queries.cluster_normal_weight)


def _contacts(a: Operand, b: Operand, padding_a: float, padding_b: float) -> ContactQueryResult:
    if a.kind == GeometryType.GROUP:
        parts = []
        for index, child in enumerate(a.children()):
            part = _contacts(child, b, padding_a, padding_b)
            part.elems1 = np.full(len(part), index, dtype=np.int64)
            parts.append(part)
        return ContactQueryResult.concatenate(parts)
    if b.kind == GeometryType.GROUP:
        parts = []
        for index, child in enumerate(b.children()):
            part = _contacts(a, child, padding_a, padding_b)
            part.elems2 = np.full(len(part), index, dtype=np.int64)
            parts.append(part)
        return ContactQueryResult.concatenate(parts)
    fn, swapped = _lookup(QueryOp.CONTACTS, a, b)
    threshold = a.margin + b.margin + padding_a + padding_b
    raw = fn(b, a, threshold).swapped() if swapped else fn(a, b, threshold)
    return assemble_contacts(raw, a.margin, b.margin, padding_a, padding_b)


# ----------------------------------------------------------------------
# Single-geometry queries
# ----------------------------------------------------------------------


def distance_point(a: Operand, point, settings: Optional[DistanceQuerySettings] = None) -> DistanceQueryResult:
    """
    Distance from the padded geometry to a world point. ``cp1`` is on the
    geometry, ``cp2`` is the point itself.
    """
    settings = settings or DistanceQuerySettings()
    point = as_vector(point, "point")
    if a.kind == GeometryType.GROUP:
        return _closest_child(a.children(), lambda child: distance_point(child, point, settings), settings, first=True)
    fn, _ = _lookup(QueryOp.DISTANCE_POINT, a)
    result = fn(a, point, _raw_settings(settings, a.margin))
    return _apply_margins(result, a.margin, 0.0, settings)


def ray_cast(a: Operand, origin, direction) -> tuple[bool, Optional[np.ndarray]]:
    """
    First hit of a ray with the padded geometry.

    Returns:
        (hit, point); a ray starting inside the geometry hits at its origin
    """
    origin = as_vector(origin, "origin")
    direction = unit(as_vector(direction, "direction"))
    if not direction.any():
        raise InvalidArgumentError("Ray direction must be non-zero")
    t = _ray_param(a, origin, direction)
    if t is None:
        return False, None
    return True, origin + t * direction


def _ray_param(a: Operand, origin: np.ndarray, direction: np.ndarray) -> Optional[float]:
    if a.kind == GeometryType.GROUP:
        hits = [_ray_param(child, origin, direction) for child in a.children()]
        hits = [t for t in hits if t is not None]
        return min(hits) if hits else None
    fn, _ = _lookup(QueryOp.RAY_CAST, a)
    t = fn(a, origin, direction, a.margin)
    return None if t is None else max(float(t), 0.0)


def support(a: Operand, direction) -> np.ndarray:
    """World point of the padded hull maximizing ``direction . x``."""
    direction = as_vector(direction, "direction")
    fn, _ = _lookup(QueryOp.SUPPORT, a)
    return fn(a, direction, a.margin)
