"""
Pair algorithms of the capability matrix.

Every registered pair gets up to three entries: ``within(a, b, threshold)``,
``distance(a, b, settings)`` and ``contacts(a, b, threshold)``. Inputs and
outputs are margin-free; thresholds passed in already include the margins
and paddings. Pairs are registered once, in the canonical kind order, and
the dispatch table handles the reversed lookups.
"""

from typing import Callable

import numpy as np
import trimesh
import trimesh.collision

from polygeom.core.config import DistanceQuerySettings, get_config
from polygeom.core.exceptions import UnsupportedOperationError
from polygeom.geometry import primitive as prim
from polygeom.geometry.types import GeometryType, unit_rows
from polygeom.proximity import analytic
from polygeom.proximity.accel import qhull
from polygeom.proximity.dispatch import QUERY_TABLE, QueryOp
from polygeom.proximity.operand import Operand
from polygeom.proximity.results import DistanceQueryResult, RawContacts
from polygeom.proximity.single import (
    cloud_nearest,
    grid_signed_distance,
    hull_world,
    inflate,
    mesh_distance_point,
    pair_result,
    primitive_signed_distance,
    unbounded,
    unsupported_subtype,
)

P = GeometryType.PRIMITIVE
M = GeometryType.TRIANGLE_MESH
C = GeometryType.POINT_CLOUD
G = GeometryType.VOLUME_GRID
H = GeometryType.CONVEX_HULL

DistanceFn = Callable[[Operand, Operand, DistanceQuerySettings], DistanceQueryResult]


def _as_operation(op: QueryOp, error: UnsupportedOperationError) -> UnsupportedOperationError:
    """The same sub-type limitation, reported for the requested operation."""
    return UnsupportedOperationError(op.value, error.kind_a, error.kind_b, error.details)


def _register_by_distance(kind_a: GeometryType, kind_b: GeometryType, distance_fn: DistanceFn) -> None:
    """Register ``within`` for a pair whose proximity reduces to one distance."""

    def within(a: Operand, b: Operand, threshold: float) -> bool:
        try:
            return distance_fn(a, b, DistanceQuerySettings()).d <= threshold
        except UnsupportedOperationError as e:
            raise _as_operation(QueryOp.WITHIN, e) from None

    within.__name__ = f"{distance_fn.__name__}_within"
    QUERY_TABLE.register(QueryOp.WITHIN, kind_a, kind_b)(within)


def _single_contact(distance_fn: DistanceFn, a: Operand, b: Operand, threshold: float) -> RawContacts:
    try:
        result = distance_fn(a, b, DistanceQuerySettings())
    except UnsupportedOperationError as e:
        raise _as_operation(QueryOp.CONTACTS, e) from None
    if not result.has_closest_points or result.d > threshold:
        return RawContacts()
    return RawContacts.single(result)


def _vertex_faces(mesh: trimesh.Trimesh, vertex_ids: np.ndarray) -> np.ndarray:
    """One incident triangle per vertex (-1 for unreferenced vertices)."""
    if len(vertex_ids) == 0:
        return np.zeros(0, dtype=np.int64)
    return np.asarray(mesh.vertex_faces)[vertex_ids, 0].astype(np.int64)


def _point_world(op: Operand) -> tuple[np.ndarray, float]:
    """World centre and radius of a point or sphere primitive."""
    return op.transform.apply(op.data.properties[:3]), op.data.radius


# ----------------------------------------------------------------------
# Primitive / primitive
# ----------------------------------------------------------------------


@QUERY_TABLE.register(QueryOp.DISTANCE, P, P)
def primitive_primitive_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    pa, pb = a.data, b.data
    if pa.is_point_like():
        center, radius = _point_world(a)
        dist, closest = primitive_signed_distance(b, center)
        return inflate(center, radius, dist[0], closest[0])
    if pb.is_point_like():
        return primitive_primitive_distance(b, a, settings).swapped()
    if pa.type == prim.SEGMENT and pb.type == prim.SEGMENT:
        s1 = a.transform.apply(pa.properties.reshape(2, 3))
        s2 = b.transform.apply(pb.properties.reshape(2, 3))
        c1, c2 = analytic.segment_segment_closest(s1[0], s1[1], s2[0], s2[1])
        return pair_result(np.linalg.norm(c2 - c1), c1, c2)
    if pa.type == prim.AABB and pb.type == prim.AABB:
        return polytope_distance(a.transform.apply(pa.corners()), b.transform.apply(pb.corners()))
    raise unsupported_subtype(QueryOp.DISTANCE.value, a, b)


_register_by_distance(P, P, primitive_primitive_distance)


@QUERY_TABLE.register(QueryOp.CONTACTS, P, P)
def primitive_primitive_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    return _single_contact(primitive_primitive_distance, a, b, threshold)


# ----------------------------------------------------------------------
# Primitive / mesh
# ----------------------------------------------------------------------


def _box_manager(op: Operand) -> trimesh.collision.CollisionManager:
    lo, hi = op.data.bounds()
    box = trimesh.creation.box(
        extents=np.maximum(hi - lo, 1e-12),
        transform=trimesh.transformations.translation_matrix(0.5 * (lo + hi)),
    )
    manager = trimesh.collision.CollisionManager()
    manager.add_object("aabb", box, transform=op.transform.matrix())
    return manager


@QUERY_TABLE.register(QueryOp.DISTANCE, P, M)
def primitive_mesh_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    """
    Signed for points and spheres (via the unsigned surface distance of the
    centre); AABBs go through fcl and segments are measured against the
    surface, both clamped at 0.
    """
    if b.data.num_triangles() == 0:
        return unbounded(settings)
    if a.data.is_point_like():
        center, radius = _point_world(a)
        surface = mesh_distance_point(b, center, settings)
        return inflate(center, radius, surface.d, surface.cp1, surface.elem1)
    if a.data.type == prim.AABB:
        return fcl_distance(_box_manager(a), "aabb", b.accel.manager(b.transform), b.accel.name)
    return segment_mesh_distance(a, b)


def segment_mesh_distance(a: Operand, b: Operand) -> DistanceQueryResult:
    """
    Distance from a segment to a mesh surface, worked in the mesh frame.

    A segment crossing a face, or starting inside a watertight mesh, is at
    distance 0. Otherwise the closest pair joins an endpoint to a face or the
    segment to a mesh edge.
    """
    mesh = b.accel.mesh
    ends = b.transform.apply_inverse(a.transform.apply(a.data.properties.reshape(2, 3)))
    p, q = ends
    length = float(np.linalg.norm(q - p))
    if length > 0.0:
        direction = (q - p) / length
        locations, _, tri = mesh.ray.intersects_location(p[None, :], direction[None, :])
        if len(locations):
            ts = (np.asarray(locations) - p) @ direction
            crossing = np.flatnonzero((ts >= 0.0) & (ts <= length))
            if len(crossing):
                best = crossing[int(np.argmin(ts[crossing]))]
                point = b.transform.apply(np.asarray(locations)[best])
                return pair_result(0.0, point, point, -1, int(tri[best]))
    if mesh.is_watertight and bool(mesh.contains(p[None, :])[0]):
        point = b.transform.apply(p)
        return pair_result(0.0, point, point)

    closest, dist, tri = b.accel.closest_points(ends)
    end = int(np.argmin(dist))
    best_d, cp1, cp2, elem = float(dist[end]), ends[end], closest[end], int(tri[end])
    edges = mesh.edges_unique
    if len(edges):
        on_segment, on_edge = analytic.segment_segments_closest(
            p, q, mesh.vertices[edges[:, 0]], mesh.vertices[edges[:, 1]]
        )
        gaps = np.linalg.norm(on_edge - on_segment, axis=1)
        edge = int(np.argmin(gaps))
        if gaps[edge] < best_d:
            best_d, cp1, cp2 = float(gaps[edge]), on_segment[edge], on_edge[edge]
            elem = int(mesh.edges_face[np.flatnonzero(mesh.edges_unique_inverse == edge)[0]])
    return pair_result(best_d, b.transform.apply(cp1), b.transform.apply(cp2), -1, elem)


_register_by_distance(P, M, primitive_mesh_distance)


@QUERY_TABLE.register(QueryOp.CONTACTS, P, M)
def primitive_mesh_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    """Closest-point contact plus every mesh vertex within the threshold."""
    closest = _single_contact(primitive_mesh_distance, a, b, threshold)
    if len(closest) == 0:
        return closest
    vertices = b.transform.apply(b.data.vertices)
    dist, on_prim = primitive_signed_distance(a, vertices)
    near = np.flatnonzero(dist <= threshold)
    samples = RawContacts(
        points_a=on_prim[near],
        points_b=vertices[near],
        distances=dist[near],
        elems_a=np.full(len(near), -1, dtype=np.int64),
        elems_b=_vertex_faces(b.accel.mesh, near),
    )
    return RawContacts.concatenate([_derive_normals(closest), _derive_normals(samples)])


def _derive_normals(raw: RawContacts) -> RawContacts:
    if raw.normals is None and len(raw):
        sign = np.where(raw.distances < 0, -1.0, 1.0)
        raw.normals = unit_rows(raw.points_b - raw.points_a) * sign[:, None]
    return raw


# ----------------------------------------------------------------------
# Mesh / mesh (fcl)
# ----------------------------------------------------------------------


def fcl_distance(
    manager_a: trimesh.collision.CollisionManager,
    name_a: str,
    manager_b: trimesh.collision.CollisionManager,
    name_b: str,
) -> DistanceQueryResult:
    """Surface distance between two fcl-managed objects, clamped at 0."""
    hit, contacts = manager_a.in_collision_other(manager_b, return_data=True)
    if hit:
        contact = contacts[0]
        point = np.asarray(contact.point, dtype=np.float64)
        return pair_result(0.0, point, point, contact.index(name_a), contact.index(name_b))
    distance, data = manager_a.min_distance_other(manager_b, return_data=True)
    return pair_result(
        max(float(distance), 0.0),
        np.asarray(data.point(name_a), dtype=np.float64),
        np.asarray(data.point(name_b), dtype=np.float64),
        data.index(name_a),
        data.index(name_b),
    )


def _nonempty_meshes(a: Operand, b: Operand) -> bool:
    return a.data.num_triangles() > 0 and b.data.num_triangles() > 0


@QUERY_TABLE.register(QueryOp.DISTANCE, M, M)
def mesh_mesh_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    if not _nonempty_meshes(a, b):
        return unbounded(settings)
    return fcl_distance(
        a.accel.manager(a.transform), a.accel.name, b.accel.manager(b.transform), b.accel.name
    )


@QUERY_TABLE.register(QueryOp.WITHIN, M, M)
def mesh_mesh_within(a: Operand, b: Operand, threshold: float) -> bool:
    if not _nonempty_meshes(a, b):
        return False
    manager_a, manager_b = a.accel.manager(a.transform), b.accel.manager(b.transform)
    if manager_a.in_collision_other(manager_b):
        return True
    return threshold > 0.0 and float(manager_a.min_distance_other(manager_b)) <= threshold


def _mesh_vertex_samples(src: Operand, dst: Operand, threshold: float) -> RawContacts:
    """Vertices of ``src`` within ``threshold`` of the surface of ``dst``."""
    vertices = src.transform.apply(src.data.vertices)
    closest, dist, tri = dst.accel.closest_points(dst.transform.apply_inverse(vertices))
    near = np.flatnonzero(dist <= threshold)
    return RawContacts(
        points_a=vertices[near],
        points_b=dst.transform.apply(closest[near]),
        distances=dist[near],
        elems_a=_vertex_faces(src.accel.mesh, near),
        elems_b=tri[near].astype(np.int64),
    )


@QUERY_TABLE.register(QueryOp.CONTACTS, M, M)
def mesh_mesh_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    """
    fcl penetration contacts, plus vertex-to-surface samples in both
    directions for the near-but-separated band.
    """
    if not _nonempty_meshes(a, b):
        return RawContacts()
    manager_a, manager_b = a.accel.manager(a.transform), b.accel.manager(b.transform)
    hit, contacts = manager_a.in_collision_other(manager_b, return_data=True)
    parts = []
    if hit:
        axis = b.transform.apply(b.accel.mesh.centroid) - a.transform.apply(a.accel.mesh.centroid)
        points = np.array([c.point for c in contacts], dtype=np.float64).reshape(-1, 3)
        normals = unit_rows(np.array([c.normal for c in contacts], dtype=np.float64).reshape(-1, 3))
        # fcl does not promise which object is first; orient A->B
        flip = normals @ axis < 0
        normals[flip] *= -1.0
        parts.append(
            RawContacts(
                points_a=points,
                points_b=points.copy(),
                distances=-np.array([c.depth for c in contacts], dtype=np.float64),
                elems_a=np.array([c.index(a.accel.name) for c in contacts], dtype=np.int64),
                elems_b=np.array([c.index(b.accel.name) for c in contacts], dtype=np.int64),
                normals=normals,
            )
        )
    parts.append(_derive_normals(_mesh_vertex_samples(a, b, threshold)))
    parts.append(_derive_normals(_mesh_vertex_samples(b, a, threshold).swapped()))
    raw = RawContacts.concatenate(parts)
    if len(raw) == 0:
        raw = _derive_normals(_single_contact(mesh_mesh_distance, a, b, threshold))
    return raw


# ----------------------------------------------------------------------
# Point cloud pairs
# ----------------------------------------------------------------------


def _cloud_world(op: Operand) -> np.ndarray:
    return op.transform.apply(op.accel.points)


@QUERY_TABLE.register(QueryOp.DISTANCE, P, C)
def primitive_cloud_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    if a.data.is_point_like():
        center, radius = _point_world(a)
        reach = settings.model_copy(update={"upper_bound": settings.upper_bound + radius})
        hit = cloud_nearest(b, center, reach)
        if hit is None:
            return unbounded(settings)
        dist, index = hit
        return inflate(center, radius, dist, b.transform.apply(b.accel.points[index]), index)
    points = _cloud_world(b)
    if len(points) == 0:
        return unbounded(settings)
    dist, closest = primitive_signed_distance(a, points)
    best = int(np.argmin(dist))
    return pair_result(dist[best], closest[best], points[best], -1, best)


@QUERY_TABLE.register(QueryOp.WITHIN, P, C)
def primitive_cloud_within(a: Operand, b: Operand, threshold: float) -> bool:
    return len(primitive_cloud_contacts(a, b, threshold)) > 0


@QUERY_TABLE.register(QueryOp.CONTACTS, P, C)
def primitive_cloud_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    """Every cloud point within ``threshold`` of the primitive."""
    tree = b.accel.tree
    if tree is None:
        return RawContacts()
    if a.data.is_point_like():
        center, radius = _point_world(a)
        near = np.array(sorted(tree.query_ball_point(b.transform.apply_inverse(center), radius + threshold)), dtype=np.int64)
        points = b.transform.apply(b.accel.points[near]).reshape(-1, 3)
        offsets = points - center
        directions = unit_rows(offsets)
        return RawContacts(
            points_a=center + radius * directions,
            points_b=points,
            distances=np.linalg.norm(offsets, axis=1) - radius,
            elems_a=np.full(len(near), -1, dtype=np.int64),
            elems_b=near,
            normals=directions,
        )
    points = _cloud_world(b)
    dist, closest = primitive_signed_distance(a, points)
    near = np.flatnonzero(dist <= threshold)
    return _derive_normals(
        RawContacts(
            points_a=closest[near],
            points_b=points[near],
            distances=dist[near],
            elems_a=np.full(len(near), -1, dtype=np.int64),
            elems_b=near,
        )
    )


def _mesh_cloud_samples(a: Operand, b: Operand) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    points = _cloud_world(b)
    closest, dist, tri = a.accel.closest_points(a.transform.apply_inverse(points))
    return points, a.transform.apply(closest), dist, tri.astype(np.int64)


@QUERY_TABLE.register(QueryOp.DISTANCE, M, C)
def mesh_cloud_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    if a.data.num_triangles() == 0 or b.accel.tree is None:
        return unbounded(settings)
    points, closest, dist, tri = _mesh_cloud_samples(a, b)
    best = int(np.argmin(dist))
    return pair_result(dist[best], closest[best], points[best], tri[best], best)


@QUERY_TABLE.register(QueryOp.WITHIN, M, C)
def mesh_cloud_within(a: Operand, b: Operand, threshold: float) -> bool:
    return len(mesh_cloud_contacts(a, b, threshold)) > 0


@QUERY_TABLE.register(QueryOp.CONTACTS, M, C)
def mesh_cloud_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    if a.data.num_triangles() == 0 or b.accel.tree is None:
        return RawContacts()
    points, closest, dist, tri = _mesh_cloud_samples(a, b)
    near = np.flatnonzero(dist <= threshold)
    return _derive_normals(
        RawContacts(
            points_a=closest[near],
            points_b=points[near],
            distances=dist[near],
            elems_a=tri[near],
            elems_b=near,
        )
    )


@QUERY_TABLE.register(QueryOp.WITHIN, C, C)
def cloud_cloud_within(a: Operand, b: Operand, threshold: float) -> bool:
    return len(cloud_cloud_contacts(a, b, threshold)) > 0


@QUERY_TABLE.register(QueryOp.CONTACTS, C, C)
def cloud_cloud_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    """Each point of A paired with its nearest point of B, when within ``threshold``."""
    if a.accel.tree is None or b.accel.tree is None:
        return RawContacts()
    points_a = _cloud_world(a)
    dist, index = b.accel.tree.query(
        b.transform.apply_inverse(points_a),
        distance_upper_bound=np.nextafter(threshold, np.inf),
    )
    near = np.flatnonzero(np.isfinite(dist))
    return _derive_normals(
        RawContacts(
            points_a=points_a[near],
            points_b=b.transform.apply(b.accel.points[index[near]]).reshape(-1, 3),
            distances=dist[near],
            elems_a=near,
            elems_b=index[near].astype(np.int64),
        )
    )


# ----------------------------------------------------------------------
# Volume grid pairs
# ----------------------------------------------------------------------


def _primitive_samples(op: Operand, spacing: float) -> np.ndarray:
    """World sample points covering a segment or a box, about ``spacing`` apart."""
    limit = get_config().queries.grid_samples_per_axis
    lo, hi = op.data.bounds()
    if op.data.type == prim.SEGMENT:
        ends = op.data.properties.reshape(2, 3)
        count = int(np.clip(np.ceil(op.data.size() / spacing) + 1, 2, limit ** 2))
        local = ends[0] + np.linspace(0.0, 1.0, count)[:, None] * (ends[1] - ends[0])
    else:
        counts = np.clip(np.ceil((hi - lo) / spacing).astype(int) + 1, 2, limit)
        axes = [np.linspace(lo[i], hi[i], counts[i]) for i in range(3)]
        local = np.stack(np.meshgrid(*axes, indexing="ij"), axis=-1).reshape(-1, 3)
    return op.transform.apply(local)


@QUERY_TABLE.register(QueryOp.DISTANCE, P, G)
def primitive_grid_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    """
    Points and spheres read the field at their centre. Segments and boxes
    take the minimum of the field sampled over the primitive at half the
    smallest cell size.
    """
    if a.data.is_point_like():
        center, radius = _point_world(a)
        values, closest, _ = grid_signed_distance(b, center)
        return inflate(center, radius, values[0], closest[0])
    samples = _primitive_samples(a, 0.5 * float(b.data.cell_size().min()))
    values, closest, grads = grid_signed_distance(b, samples)
    best = int(np.argmin(values))
    result = pair_result(values[best], samples[best], closest[best])
    if grads[best].any():
        result.grad1, result.grad2 = grads[best], -grads[best]
    return result


_register_by_distance(P, G, primitive_grid_distance)


@QUERY_TABLE.register(QueryOp.CONTACTS, P, G)
def primitive_grid_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    """Single closest-point contact; only points and spheres are supported."""
    if not a.data.is_point_like():
        raise unsupported_subtype(QueryOp.CONTACTS.value, a, b)
    return _single_contact(primitive_grid_distance, a, b, threshold)


@QUERY_TABLE.register(QueryOp.DISTANCE, C, G)
def cloud_grid_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    points = _cloud_world(a)
    if len(points) == 0:
        return unbounded(settings)
    values, closest, grads = grid_signed_distance(b, points)
    best = int(np.argmin(values))
    result = pair_result(values[best], points[best], closest[best], best, -1)
    if grads[best].any():
        result.grad1, result.grad2 = grads[best], -grads[best]
    return result


@QUERY_TABLE.register(QueryOp.WITHIN, C, G)
def cloud_grid_within(a: Operand, b: Operand, threshold: float) -> bool:
    points = _cloud_world(a)
    return len(points) > 0 and bool((grid_signed_distance(b, points)[0] <= threshold).any())


@QUERY_TABLE.register(QueryOp.CONTACTS, C, G)
def cloud_grid_contacts(a: Operand, b: Operand, threshold: float) -> RawContacts:
    """Cloud points whose grid value is within ``threshold``; normals are the negated grid gradients."""
    points = _cloud_world(a)
    if len(points) == 0:
        return RawContacts()
    values, closest, grads = grid_signed_distance(b, points)
    near = np.flatnonzero(values <= threshold)
    return RawContacts(
        points_a=points[near],
        points_b=closest[near],
        distances=values[near],
        elems_a=near,
        elems_b=np.full(len(near), -1, dtype=np.int64),
        normals=-grads[near],
    )


# ----------------------------------------------------------------------
# Convex hull / convex hull
# ----------------------------------------------------------------------


def polytope_distance(vertices_a: np.ndarray, vertices_b: np.ndarray, tol: float = 1e-12) -> DistanceQueryResult:
    """
    Signed distance between two convex polytopes from the hull of their
    Minkowski difference ``A - B``: the distance from the origin to that
    hull's boundary, negative when the origin is inside.
    """
    diff = (vertices_a[:, None, :] - vertices_b[None, :, :]).reshape(-1, 3)
    ia = np.repeat(np.arange(len(vertices_a)), len(vertices_b))
    ib = np.tile(np.arange(len(vertices_b)), len(vertices_a))
    hull = qhull(diff)
    if len(hull.points) != len(diff):
        # degenerate inputs were thickened; fall back to vertex pairs
        d = np.linalg.norm(diff, axis=1)
        best = int(np.argmin(d))
        return pair_result(d[best], vertices_a[ia[best]], vertices_b[ib[best]])
    equations, simplices = hull.equations, hull.simplices
    slack = equations[:, 3]
    deepest = float(slack.max())
    if deepest <= 0.0:
        best, weights = None, None
        for facet in np.flatnonzero(slack >= deepest - tol):
            q = -slack[facet] * equations[facet, :3]
            w = analytic.barycentric(diff[simplices[facet]], q)
            if weights is None or w.min() > weights.min():
                best, weights = facet, w
        d = deepest
    else:
        closest, dist = analytic.closest_points_on_triangles(diff[simplices], np.zeros(3))
        best = int(np.argmin(dist))
        weights = analytic.barycentric(diff[simplices[best]], closest[best])
        d = float(dist[best])
    weights = np.clip(weights, 0.0, None)
    weights = weights / weights.sum()
    corners = simplices[best]
    return pair_result(d, weights @ vertices_a[ia[corners]], weights @ vertices_b[ib[corners]])


@QUERY_TABLE.register(QueryOp.DISTANCE, H, H)
def hull_hull_distance(a: Operand, b: Operand, settings: DistanceQuerySettings) -> DistanceQueryResult:
    return polytope_distance(hull_world(a)[0], hull_world(b)[0])


_register_by_distance(H, H, hull_hull_distance)
