"""
Closed-form distance, closest-point and ray routines for analytic shapes.

All functions operate on plain numpy arrays in a common frame.
"""

from typing import Optional

import numpy as np
import trimesh


def closest_points_on_segment(points: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Closest points on segment ``ab`` for each row of ``points``."""
    points = np.atleast_2d(points)
    ab = b - a
    denom = float(ab @ ab)
    if denom == 0.0:
        return np.repeat(a[None, :], len(points), axis=0)
    u = np.clip((points - a) @ ab / denom, 0.0, 1.0)
    return a + u[:, None] * ab


def segment_segment_closest(
    p1: np.ndarray, q1: np.ndarray, p2: np.ndarray, q2: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Closest points between segments ``p1q1`` and ``p2q2``."""
    d1, d2 = q1 - p1, q2 - p2
    r = p1 - p2
    a, e = float(d1 @ d1), float(d2 @ d2)
    f = float(d2 @ r)
    eps = 1e-15
    if a <= eps and e <= eps:
        return p1.copy(), p2.copy()
    if a <= eps:
        s, t = 0.0, float(np.clip(f / e, 0.0, 1.0))
    else:
        c = float(d1 @ r)
        if e <= eps:
            s, t = float(np.clip(-c / a, 0.0, 1.0)), 0.0
        else:
            b = float(d1 @ d2)
            denom = a * e - b * b
            s = float(np.clip((b * f - c * e) / denom, 0.0, 1.0)) if denom > eps else 0.0
            t = (b * s + f) / e
            if t < 0.0:
                t, s = 0.0, float(np.clip(-c / a, 0.0, 1.0))
            elif t > 1.0:
                t, s = 1.0, float(np.clip((b - c) / a, 0.0, 1.0))
    return p1 + d1 * s, p2 + d2 * t


def segment_segments_closest(
    p: np.ndarray, q: np.ndarray, starts: np.ndarray, ends: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Closest points between segment ``pq`` and each segment ``starts[i] ends[i]``.

    Returns:
        (m, 3) points on ``pq`` and (m, 3) points on the other segments
    """
    d1 = q - p
    d2 = ends - starts
    r = p - starts
    a = float(d1 @ d1)
    e = np.einsum("ij,ij->i", d2, d2)
    f = np.einsum("ij,ij->i", d2, r)
    c = r @ d1
    b = d2 @ d1
    eps = 1e-15
    safe_e = np.where(e > eps, e, 1.0)
    if a <= eps:
        s = np.zeros(len(starts))
    else:
        denom = a * e - b * b
        s = np.where(denom > eps, np.clip((b * f - c * e) / np.where(denom > eps, denom, 1.0), 0.0, 1.0), 0.0)
        # degenerate other segment: project its point onto pq
        s = np.where(e > eps, s, np.clip(-c / a, 0.0, 1.0))
    t = np.where(e > eps, (b * s + f) / safe_e, 0.0)
    if a > eps:
        low, high = t < 0.0, t > 1.0
        s = np.where(low, np.clip(-c / a, 0.0, 1.0), s)
        s = np.where(high, np.clip((b - c) / a, 0.0, 1.0), s)
        t = np.clip(t, 0.0, 1.0)
    else:
        t = np.where(e > eps, np.clip(f / safe_e, 0.0, 1.0), 0.0)
    return p + s[:, None] * d1, starts + t[:, None] * d2


def aabb_signed_distance(
    points: np.ndarray, bmin: np.ndarray, bmax: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Signed distance from each point to the box surface (negative inside)
    and the closest point on the box surface.
    """
    points = np.atleast_2d(points)
    clamped = np.clip(points, bmin, bmax)
    outside = np.linalg.norm(points - clamped, axis=1)
    dist = outside.copy()
    closest = clamped
    inside = outside == 0.0
    if inside.any():
        p = points[inside]
        # Distance to each of the 6 faces; push to the nearest one
        gaps = np.concatenate([p - bmin, bmax - p], axis=1)
        face = np.argmin(gaps, axis=1)
        depth = gaps[np.arange(len(p)), face]
        surf = p.copy()
        axis = face % 3
        lower = face < 3
        surf[np.arange(len(p)), axis] = np.where(lower, bmin[axis], bmax[axis])
        dist[inside] = -depth
        closest = closest.copy()
        closest[inside] = surf
    return dist, closest


def ray_sphere(
    origin: np.ndarray, direction: np.ndarray, center: np.ndarray, radius: float
) -> Optional[float]:
    """Ray parameter of the first hit with a sphere (0 if the origin is inside)."""
    oc = origin - center
    c = float(oc @ oc) - radius * radius
    if c <= 0.0:
        return 0.0
    b = float(oc @ direction)
    disc = b * b - c
    if b > 0.0 or disc < 0.0:
        return None
    return -b - float(np.sqrt(disc))


def ray_aabb(
    origin: np.ndarray, direction: np.ndarray, bmin: np.ndarray, bmax: np.ndarray
) -> Optional[float]:
    """Slab test; returns the entry parameter (0 if the origin is inside)."""
    t_enter, t_exit = 0.0, np.inf
    for axis in range(3):
        if abs(direction[axis]) < 1e-15:
            if origin[axis] < bmin[axis] or origin[axis] > bmax[axis]:
                return None
            continue
        t0 = (bmin[axis] - origin[axis]) / direction[axis]
        t1 = (bmax[axis] - origin[axis]) / direction[axis]
        if t0 > t1:
            t0, t1 = t1, t0
        t_enter, t_exit = max(t_enter, t0), min(t_exit, t1)
        if t_enter > t_exit:
            return None
    return float(t_enter)


def ray_halfspaces(
    origin: np.ndarray, direction: np.ndarray, equations: np.ndarray
) -> Optional[float]:
    """
    Clip a ray against the polytope ``{x : n.x + offset <= 0}`` given as Qhull
    ``equations`` rows ``[n, offset]``. Returns the entry parameter.
    """
    normals, offsets = equations[:, :3], equations[:, 3]
    num = -(normals @ origin + offsets)
    den = normals @ direction
    t_enter, t_exit = 0.0, np.inf
    parallel = np.abs(den) < 1e-15
    if (parallel & (num < 0)).any():
        return None
    entering = ~parallel & (den < 0)
    exiting = ~parallel & (den > 0)
    if entering.any():
        t_enter = max(t_enter, float((num[entering] / den[entering]).max()))
    if exiting.any():
        t_exit = min(t_exit, float((num[exiting] / den[exiting]).min()))
    if t_enter > t_exit:
        return None
    return t_enter


def closest_points_on_triangles(
    triangles: np.ndarray, point: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Closest point to ``point`` on each triangle and its distance.

    Args:
        triangles: (m, 3, 3) triangle corners
        point: query point

    Returns:
        (m, 3) closest points and (m,) distances
    """
    query = np.repeat(np.asarray(point, dtype=np.float64)[None, :], len(triangles), axis=0)
    closest = trimesh.triangles.closest_point(triangles, query)
    return closest, np.linalg.norm(closest - query, axis=1)


def barycentric(triangle: np.ndarray, point: np.ndarray) -> np.ndarray:
    """Barycentric weights of ``point`` w.r.t. one triangle."""
    weights = trimesh.triangles.points_to_barycentric(
        triangle[None, :, :], np.asarray(point, dtype=np.float64)[None, :]
    )[0]
    return np.asarray(weights)
