"""
Single-geometry queries: signed distance to a point, ray casting and support
points.

Every algorithm works in world coordinates by mapping query inputs into the
local frame of the operand's data. Results are margin-free; the engine
applies collision margins afterwards (ray casts excepted, which take the
margin directly since hits must lie on the padded surface).
"""

from typing import Callable, Optional

import numpy as np

from polygeom.core.config import DistanceQuerySettings, get_config
from polygeom.core.exceptions import UnsupportedOperationError
from polygeom.geometry import primitive as prim
from polygeom.geometry.types import GeometryType, unit
from polygeom.proximity import analytic
from polygeom.proximity.dispatch import QUERY_TABLE, QueryOp
from polygeom.proximity.operand import Operand
from polygeom.proximity.results import DistanceQueryResult


# ----------------------------------------------------------------------
# Result helpers
# ----------------------------------------------------------------------


def pair_result(
    d: float,
    cp1: np.ndarray,
    cp2: np.ndarray,
    elem1: int = -1,
    elem2: int = -1,
) -> DistanceQueryResult:
    """
    Distance result from a pair of closest points.

    The A->B direction is ``sign(d) * unit(cp2 - cp1)``; ``grad2`` equals it
    and ``grad1`` is its negation. Coincident closest points give zero
    gradients.
    """
    cp1 = np.asarray(cp1, dtype=np.float64)
    cp2 = np.asarray(cp2, dtype=np.float64)
    direction = unit(cp2 - cp1) * (-1.0 if d < 0 else 1.0)
    return DistanceQueryResult(
        d=float(d),
        has_closest_points=True,
        has_gradients=True,
        cp1=cp1,
        cp2=cp2,
        grad1=-direction,
        grad2=direction,
        elem1=int(elem1),
        elem2=int(elem2),
    )


def unbounded(settings: DistanceQuerySettings) -> DistanceQueryResult:
    """Result for data with nothing in reach (empty clouds, k-d misses)."""
    return DistanceQueryResult(d=float(settings.upper_bound))


def inflate(center: np.ndarray, radius: float, d: float, cp: np.ndarray, elem: int = -1) -> DistanceQueryResult:
    """
    Distance from a ball to a shape, given the shape's signed distance ``d``
    and closest point ``cp`` for the ball centre. The ball is operand A.
    """
    toward = unit(cp - center) * (1.0 if d >= 0 else -1.0)
    return pair_result(d - radius, center + radius * toward, cp, -1, elem)


# ----------------------------------------------------------------------
# Signed distance of world points, per kind
# ----------------------------------------------------------------------


def primitive_signed_distance(op: Operand, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Signed distances and world closest points of a primitive for world ``points``."""
    data = op.data
    local = op.transform.apply_inverse(np.atleast_2d(points))
    p = data.properties
    if data.type == prim.POINT:
        closest = np.repeat(p[None, :3], len(local), axis=0)
        dist = np.linalg.norm(local - closest, axis=1)
    elif data.type == prim.SPHERE:
        offsets = local - p[:3]
        norms = np.linalg.norm(offsets, axis=1)
        safe = np.where(norms > 0.0, norms, 1.0)
        dirs = np.where((norms > 0.0)[:, None], offsets / safe[:, None], np.array([1.0, 0.0, 0.0]))
        closest = p[:3] + p[3] * dirs
        dist = norms - p[3]
    elif data.type == prim.SEGMENT:
        closest = analytic.closest_points_on_segment(local, p[:3], p[3:])
        dist = np.linalg.norm(local - closest, axis=1)
    else:
        dist, closest = analytic.aabb_signed_distance(local, p[:3], p[3:])
    return dist, op.transform.apply(closest)


@QUERY_TABLE.register(QueryOp.DISTANCE_POINT, GeometryType.PRIMITIVE)
def primitive_distance_point(op: Operand, point: np.ndarray, settings: DistanceQuerySettings) -> DistanceQueryResult:
    dist, closest = primitive_signed_distance(op, point)
    return pair_result(dist[0], closest[0], point)


@QUERY_TABLE.register(QueryOp.DISTANCE_POINT, GeometryType.TRIANGLE_MESH)
def mesh_distance_point(op: Operand, point: np.ndarray, settings: DistanceQuerySettings) -> DistanceQueryResult:
    if op.data.num_triangles() == 0:
        return unbounded(settings)
    closest, dist, tri = op.accel.closest_points(op.transform.apply_inverse(point[None, :]))
    return pair_result(dist[0], op.transform.apply(closest[0]), point, int(tri[0]))


@QUERY_TABLE.register(QueryOp.DISTANCE_POINT, GeometryType.POINT_CLOUD)
def cloud_distance_point(op: Operand, point: np.ndarray, settings: DistanceQuerySettings) -> DistanceQueryResult:
    hit = cloud_nearest(op, point, settings)
    if hit is None:
        return unbounded(settings)
    dist, index = hit
    return pair_result(dist, op.transform.apply(op.accel.points[index]), point, index)


def cloud_nearest(op: Operand, point: np.ndarray, settings: DistanceQuerySettings) -> Optional[tuple[float, int]]:
    """Nearest cloud point to a world point, honouring ``rel_err`` and ``upper_bound``."""
    tree = op.accel.tree
    if tree is None:
        return None
    dist, index = tree.query(
        op.transform.apply_inverse(point),
        eps=settings.rel_err,
        distance_upper_bound=settings.upper_bound,
    )
    if not np.isfinite(dist):
        return None
    return float(dist), int(index)


def grid_signed_distance(op: Operand, points: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Interpolated signed distances, world closest points and world outward
    gradients of a grid for world ``points``.
    """
    local = op.transform.apply_inverse(np.atleast_2d(points))
    values, grads = op.accel.signed_distance(local)
    closest = op.transform.apply(local - grads * values[:, None])
    return values, closest, op.transform.apply_vector(grads)


@QUERY_TABLE.register(QueryOp.DISTANCE_POINT, GeometryType.VOLUME_GRID)
def grid_distance_point(op: Operand, point: np.ndarray, settings: DistanceQuerySettings) -> DistanceQueryResult:
    values, closest, grads = grid_signed_distance(op, point)
    result = pair_result(values[0], closest[0], point)
    if not grads[0].any():
        return result
    # the interpolated gradient is more faithful than the closest-point direction
    result.grad1, result.grad2 = -grads[0], grads[0]
    return result


def hull_world(op: Operand) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """World hull vertices, facet equations and simplices."""
    accel = op.accel
    vertices = op.transform.apply(accel.vertices)
    normals = op.transform.apply_vector(accel.equations[:, :3])
    offsets = accel.equations[:, 3] - normals @ op.transform.t
    return vertices, np.column_stack([normals, offsets]), accel.simplices


def hull_signed_distance(
    vertices: np.ndarray, equations: np.ndarray, simplices: np.ndarray, point: np.ndarray
) -> tuple[float, np.ndarray]:
    """Signed distance and closest boundary point of a convex polytope."""
    slack = equations[:, :3] @ point + equations[:, 3]
    worst = int(np.argmax(slack))
    if slack[worst] <= 0.0:
        return float(slack[worst]), point - slack[worst] * equations[worst, :3]
    closest, dist = analytic.closest_points_on_triangles(vertices[simplices], point)
    best = int(np.argmin(dist))
    return float(dist[best]), closest[best]


@QUERY_TABLE.register(QueryOp.DISTANCE_POINT, GeometryType.CONVEX_HULL)
def hull_distance_point(op: Operand, point: np.ndarray, settings: DistanceQuerySettings) -> DistanceQueryResult:
    d, cp = hull_signed_distance(*hull_world(op), point)
    return pair_result(d, cp, point)


# ----------------------------------------------------------------------
# Ray casting
# ----------------------------------------------------------------------


def sphere_trace(
    sdf: Callable[[np.ndarray], float],
    origin: np.ndarray,
    direction: np.ndarray,
    t_start: float,
    t_stop: float,
    min_step: float,
) -> Optional[float]:
    """
    March along the ray by the (lower-bound) distance returned by ``sdf``
    until it drops below the query tolerance.
    """
    config = get_config().queries
    t = t_start
    for _ in range(config.ray_max_steps):
        if t > t_stop:
            return None
        value = sdf(origin + t * direction)
        if value <= config.tolerance:
            return t
        t += max(value, min_step)
    return None


@QUERY_TABLE.register(QueryOp.RAY_CAST, GeometryType.PRIMITIVE)
def primitive_ray_cast(op: Operand, origin: np.ndarray, direction: np.ndarray, margin: float) -> Optional[float]:
    data = op.data
    s = op.transform.apply_inverse(origin)
    d = op.transform.apply_inverse_vector(direction)
    p = data.properties
    if data.type in (prim.POINT, prim.SPHERE):
        radius = data.radius + margin
        if radius <= 0.0:
            return None
        return analytic.ray_sphere(s, d, p[:3], radius)
    if data.type == prim.AABB:
        return analytic.ray_aabb(s, d, p[:3] - margin, p[3:] + margin)
    if margin <= 0.0:
        return None
    # segment padded into a capsule
    a, b = p[:3], p[3:]

    def capsule(x: np.ndarray) -> float:
        return float(np.linalg.norm(x - analytic.closest_points_on_segment(x, a, b)[0])) - margin

    far = float(np.linalg.norm(s - 0.5 * (a + b))) + data.size() + 2.0 * margin
    return sphere_trace(capsule, s, d, 0.0, far, get_config().queries.tolerance)


@QUERY_TABLE.register(QueryOp.RAY_CAST, GeometryType.TRIANGLE_MESH)
def mesh_ray_cast(op: Operand, origin: np.ndarray, direction: np.ndarray, margin: float) -> Optional[float]:
    if op.data.num_triangles() == 0:
        return None
    accel = op.accel
    s = op.transform.apply_inverse(origin)
    d = op.transform.apply_inverse_vector(direction)
    if margin <= 0.0:
        if accel.mesh.is_watertight and bool(accel.mesh.contains(s[None, :])[0]):
            return 0.0
        locations, _, _ = accel.mesh.ray.intersects_location(s[None, :], d[None, :])
        if len(locations) == 0:
            return None
        ts = (np.asarray(locations) - s) @ d
        ts = ts[ts >= -get_config().queries.tolerance]
        return float(max(ts.min(), 0.0)) if len(ts) else None
    center = accel.mesh.bounding_sphere.primitive.center
    radius = float(accel.mesh.bounding_sphere.primitive.radius) + margin
    t_enter = analytic.ray_sphere(s, d, center, radius)
    if t_enter is None:
        return None

    def padded(x: np.ndarray) -> float:
        return float(accel.closest_points(x[None, :])[1][0]) - margin

    far = float(np.linalg.norm(s - center)) + radius
    return sphere_trace(padded, s, d, t_enter, far, get_config().queries.tolerance)


@QUERY_TABLE.register(QueryOp.RAY_CAST, GeometryType.POINT_CLOUD)
def cloud_ray_cast(op: Operand, origin: np.ndarray, direction: np.ndarray, margin: float) -> Optional[float]:
    """Each point is a ball of radius ``margin``; bare points are never hit."""
    points = op.accel.points
    if margin <= 0.0 or len(points) == 0:
        return None
    s = op.transform.apply_inverse(origin)
    d = op.transform.apply_inverse_vector(direction)
    oc = s - points
    b = oc @ d
    c = np.einsum("ij,ij->i", oc, oc) - margin * margin
    if (c <= 0.0).any():
        return 0.0
    disc = b * b - c
    hit = (disc >= 0.0) & (b <= 0.0)
    if not hit.any():
        return None
    return float((-b[hit] - np.sqrt(disc[hit])).min())


@QUERY_TABLE.register(QueryOp.RAY_CAST, GeometryType.VOLUME_GRID)
def grid_ray_cast(op: Operand, origin: np.ndarray, direction: np.ndarray, margin: float) -> Optional[float]:
    accel = op.accel
    s = op.transform.apply_inverse(origin)
    d = op.transform.apply_inverse_vector(direction)
    t_enter = analytic.ray_aabb(s, d, accel.bmin - margin, accel.bmax + margin)
    if t_enter is None:
        return None
    config = get_config().queries
    far = t_enter + float(np.linalg.norm(accel.bmax - accel.bmin)) + 2.0 * margin

    def padded(x: np.ndarray) -> float:
        return float(accel.signed_distance(x[None, :])[0][0]) - margin

    min_step = config.ray_min_step_fraction * float(accel.cell.min())
    return sphere_trace(padded, s, d, t_enter, far, min_step)


@QUERY_TABLE.register(QueryOp.RAY_CAST, GeometryType.CONVEX_HULL)
def hull_ray_cast(op: Operand, origin: np.ndarray, direction: np.ndarray, margin: float) -> Optional[float]:
    _, equations, _ = hull_world(op)
    padded = equations.copy()
    padded[:, 3] -= margin
    return analytic.ray_halfspaces(origin, direction, padded)


# ----------------------------------------------------------------------
# Support
# ----------------------------------------------------------------------


@QUERY_TABLE.register(QueryOp.SUPPORT, GeometryType.CONVEX_HULL)
def hull_support(op: Operand, direction: np.ndarray, margin: float) -> np.ndarray:
    vertices, _, _ = hull_world(op)
    best = int(np.argmax(vertices @ direction))
    return vertices[best] + margin * unit(direction)


def unsupported_subtype(operation: str, a: Operand, b: Operand) -> UnsupportedOperationError:
    """Error for primitive sub-type pairs without an algorithm."""
    return UnsupportedOperationError(operation, _label(a), _label(b))


def _label(op: Operand) -> str:
    if op.kind == GeometryType.PRIMITIVE:
        return f"{op.kind.value}({op.data.type})"
    return op.kind.value
