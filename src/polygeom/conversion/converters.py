"""
Converters between representation kinds.

Every converter maps local-frame data of one kind to new local-frame data
of another, parameterized by one scalar whose meaning depends on the pair:

=========================  ==========================================  =================================
Source -> target           param                                       default when 0
=========================  ==========================================  =================================
Mesh -> PointCloud         max point spacing after subdivision         mean triangle diameter
Mesh -> VolumeGrid         cell size                                   mean triangle diameter
Mesh -> ConvexHull         0: one hull, >0: decomposition error        one hull
PointCloud -> Mesh         max edge length of a structured-cloud quad  unlimited
PointCloud -> ConvexHull   unused
PointCloud -> VolumeGrid   occupancy cell size                         mean nearest-neighbour spacing
VolumeGrid -> Mesh         iso level                                   0
VolumeGrid -> PointCloud   iso level                                   0
ConvexHull -> Mesh         unused
ConvexHull -> PointCloud   max point spacing                           mean triangle diameter of the hull
Primitive -> Mesh          resolution (sphere and aabb)                size * primitive_resolution_fraction
Primitive -> PointCloud    point spacing                               size * primitive_resolution_fraction
Primitive -> VolumeGrid    cell size                                   size * primitive_resolution_fraction
Primitive -> ConvexHull    sphere tessellation resolution              size * primitive_resolution_fraction
=========================  ==========================================  =================================
"""

import math
from typing import Any, Callable, Dict, Tuple

import numpy as np
import trimesh
from scipy.spatial import QhullError, cKDTree
from skimage import measure

from polygeom.core.config import get_config
from polygeom.core.exceptions import (
    InvalidArgumentError,
    PolygeomError,
    UnsupportedConversionError,
)
from polygeom.core.logging import get_logger
from polygeom.geometry import primitive as prim
from polygeom.geometry.convexhull import ConvexHull
from polygeom.geometry.group import Group
from polygeom.geometry.mesh import TriangleMesh
from polygeom.geometry.pointcloud import NORMAL_CHANNELS, PointCloud
from polygeom.geometry.primitive import GeometricPrimitive
from polygeom.geometry.types import GeometryType
from polygeom.geometry.volumegrid import VolumeGrid
from polygeom.proximity import analytic

_logger = get_logger(__name__)

Converter = Callable[[Any, float], Any]

# (source kind, target kind) -> converter
CONVERTER_REGISTRY: Dict[Tuple[GeometryType, GeometryType], Converter] = {}


def converts(source: GeometryType, target: GeometryType) -> Callable[[Converter], Converter]:
    """Decorator registering a converter for one directed kind pair."""

    def decorator(fn: Converter) -> Converter:
        CONVERTER_REGISTRY[(source, target)] = fn
        return fn

    return decorator


def get_converter(source: GeometryType, target: GeometryType) -> Converter:
    """
    Look up the converter for ``source -> target``.

    Raises:
        UnsupportedConversionError: If the pair is not registered
    """
    try:
        return CONVERTER_REGISTRY[(source, target)]
    except KeyError:
        raise UnsupportedConversionError(
            source.value,
            target.value,
            details={"available": sorted(t.value for s, t in CONVERTER_REGISTRY if s == source)},
        ) from None


def convert_data(data: Any, target: GeometryType, param: float = 0.0) -> Any:
    """
    Convert representation ``data`` into a new representation of ``target``.

    Args:
        data: source representation
        target: kind to produce
        param: conversion-specific scalar; 0 selects the documented default

    Returns:
        The new representation (a Group of hulls for convex decomposition)

    Raises:
        UnsupportedConversionError: If no converter is registered
        InvalidArgumentError: If the source cannot be converted or a
            collaborating library fails
    """
    if param < 0:
        raise InvalidArgumentError("Conversion parameter must be non-negative", details={"param": param})
    converter = get_converter(data.kind, target)
    try:
        result = converter(data, float(param))
    except PolygeomError:
        raise
    except (ValueError, RuntimeError, QhullError) as e:
        raise InvalidArgumentError(
            f"Conversion from {data.kind.value} to {target.value} failed: {e}",
            details={"param": param},
        ) from e
    _logger.info(
        "conversion_complete",
        source=data.kind.value,
        target=result.kind.value,
        param=param,
    )
    return result


def _default(param: float, fallback: float, source: str, target: str, meaning: str) -> float:
    if param > 0:
        return param
    _logger.info("conversion_default", source=source, target=target, meaning=meaning, value=fallback)
    return fallback


def _grid_frame(lower: np.ndarray, upper: np.ndarray, resolution: float) -> tuple[np.ndarray, np.ndarray, tuple]:
    """Padded bounds and dims of a grid with cubic cells of ``resolution``."""
    if resolution <= 0 or not math.isfinite(resolution):
        raise InvalidArgumentError("Grid resolution must be positive", details={"resolution": resolution})
    pad = get_config().conversion.grid_padding_cells * resolution
    lower, upper = lower - pad, upper + pad
    dims = np.maximum(np.ceil((upper - lower) / resolution).astype(int), 2)
    return lower, lower + dims * resolution, tuple(int(d) for d in dims)


# ----------------------------------------------------------------------
# Mesh sources
# ----------------------------------------------------------------------


def _sample_surface(mesh: trimesh.Trimesh, dispersion: float) -> PointCloud:
    """Vertices of the mesh subdivided to ``dispersion``, with vertex normals."""
    if len(mesh.faces) == 0:
        return PointCloud(mesh.vertices)
    vertices, faces = trimesh.remesh.subdivide_to_size(
        mesh.vertices,
        mesh.faces,
        max_edge=dispersion,
        max_iter=get_config().conversion.max_subdivision_iterations,
    )
    dense = trimesh.Trimesh(vertices=vertices, faces=faces, process=True)
    return PointCloud(
        dense.vertices,
        property_names=list(NORMAL_CHANNELS),
        properties=np.asarray(dense.vertex_normals),
    )


@converts(GeometryType.TRIANGLE_MESH, GeometryType.POINT_CLOUD)
def mesh_to_point_cloud(data: TriangleMesh, param: float) -> PointCloud:
    dispersion = _default(
        param, data.mean_triangle_diameter(), "TriangleMesh", "PointCloud", "dispersion"
    )
    return _sample_surface(data.to_trimesh(), dispersion)


@converts(GeometryType.TRIANGLE_MESH, GeometryType.VOLUME_GRID)
def mesh_to_volume_grid(data: TriangleMesh, param: float) -> VolumeGrid:
    """Signed distance grid, negative inside, sampled at cell centres."""
    if data.num_triangles() == 0:
        raise InvalidArgumentError("Cannot build a grid from an empty mesh")
    resolution = _default(
        param, data.mean_triangle_diameter(), "TriangleMesh", "VolumeGrid", "resolution"
    )
    mesh = data.to_trimesh()
    bmin, bmax, dims = _grid_frame(mesh.bounds[0], mesh.bounds[1], resolution)
    grid = VolumeGrid(bmin, bmax, np.zeros(dims))
    # trimesh reports positive distances inside the mesh
    values = -trimesh.proximity.signed_distance(mesh, grid.cell_centers())
    grid.values = np.asarray(values, dtype=np.float64).reshape(dims)
    _logger.debug("mesh_sampled_to_grid", dims=dims, cells=int(np.prod(dims)))
    return grid


@converts(GeometryType.TRIANGLE_MESH, GeometryType.CONVEX_HULL)
def mesh_to_convex_hull(data: TriangleMesh, param: float) -> Any:
    """One hull for ``param == 0``; otherwise a Group of convex pieces."""
    if data.num_vertices() == 0:
        return ConvexHull()
    if param <= 0:
        return ConvexHull(data.vertices)
    return _decompose(data.to_trimesh(), param)


def _decompose(mesh: trimesh.Trimesh, error: float) -> Group:
    from polygeom.geometry3d import Geometry3D

    try:
        parts = trimesh.decomposition.convex_decomposition(
            mesh, minimumVolumePercentErrorAllowed=100.0 * error
        )
    except ImportError as e:
        raise InvalidArgumentError(
            "Convex decomposition needs the optional 'vhacdx' package",
            details={"install": "pip install polygeom[decomposition]"},
        ) from e
    if isinstance(parts, (dict, trimesh.Trimesh)):
        parts = [parts]
    children = []
    for part in parts:
        vertices = part["vertices"] if isinstance(part, dict) else part.vertices
        children.append(Geometry3D(ConvexHull(np.asarray(vertices))))
    _logger.info("convex_decomposition", pieces=len(children), error=error)
    return Group(children)


# ----------------------------------------------------------------------
# Point cloud sources
# ----------------------------------------------------------------------


@converts(GeometryType.POINT_CLOUD, GeometryType.TRIANGLE_MESH)
def point_cloud_to_mesh(data: PointCloud, param: float) -> TriangleMesh:
    """
    Triangulate a structured (width x height) cloud row by row. Quads with a
    non-finite corner or an edge longer than ``param`` are skipped.
    """
    shape = data.structured_shape()
    if shape is None:
        raise InvalidArgumentError(
            "PointCloud to TriangleMesh needs a structured cloud",
            details={"width": data.settings.get("width"), "height": data.settings.get("height")},
        )
    width, height = shape
    max_edge = param if param > 0 else np.inf
    grid = np.arange(width * height).reshape(height, width)
    a, b = grid[:-1, :-1].ravel(), grid[:-1, 1:].ravel()
    c, d = grid[1:, :-1].ravel(), grid[1:, 1:].ravel()
    triangles = np.vstack([np.column_stack([a, c, b]), np.column_stack([b, c, d])])

    points = data.points
    valid = np.isfinite(points).all(axis=1)
    corners = points[triangles]
    edges = np.linalg.norm(corners - np.roll(corners, 1, axis=1), axis=2)
    keep = valid[triangles].all(axis=1) & (np.nan_to_num(edges, nan=np.inf).max(axis=1) <= max_edge)
    triangles = triangles[keep]

    used, remap = np.unique(triangles, return_inverse=True)
    return TriangleMesh(points[used], remap.reshape(-1, 3))


@converts(GeometryType.POINT_CLOUD, GeometryType.CONVEX_HULL)
def point_cloud_to_convex_hull(data: PointCloud, param: float) -> ConvexHull:
    return ConvexHull(data.points[np.isfinite(data.points).all(axis=1)])


@converts(GeometryType.POINT_CLOUD, GeometryType.VOLUME_GRID)
def point_cloud_to_volume_grid(data: PointCloud, param: float) -> VolumeGrid:
    """Occupancy grid: 1 in every cell holding a point, 0 elsewhere."""
    points = data.points[np.isfinite(data.points).all(axis=1)]
    if len(points) == 0:
        raise InvalidArgumentError("Cannot build a grid from an empty point cloud")
    fallback = 0.0
    if len(points) > 1:
        spacing, _ = cKDTree(points).query(points, k=2)
        fallback = float(spacing[:, 1].mean())
    resolution = _default(param, fallback, "PointCloud", "VolumeGrid", "resolution")
    bmin, bmax, dims = _grid_frame(points.min(axis=0), points.max(axis=0), resolution)
    values = np.zeros(dims)
    cells = np.floor((points - bmin) / resolution).astype(int)
    cells = np.clip(cells, 0, np.array(dims) - 1)
    values[cells[:, 0], cells[:, 1], cells[:, 2]] = 1.0
    return VolumeGrid(bmin, bmax, values)


# ----------------------------------------------------------------------
# Volume grid sources
# ----------------------------------------------------------------------


def _iso_surface(data: VolumeGrid, level: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Marching-cubes vertices (world units), faces and outward normals."""
    values = data.values
    if min(data.dims) < 2 or not values.min() <= level <= values.max():
        return np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64), np.zeros((0, 3))
    # negative-inside convention: values ascend outward
    verts, faces, normals, _ = measure.marching_cubes(
        values, level=level, gradient_direction="ascent"
    )
    faces, normals = _orient_outward(values, verts, faces, normals)
    cell = data.cell_size()
    return data.bmin + 0.5 * cell + verts * cell, faces, normals


def _orient_outward(
    values: np.ndarray, verts: np.ndarray, faces: np.ndarray, normals: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Flip normals and winding, as a whole, so both point up the value gradient."""
    if len(faces) == 0:
        return faces, normals
    index = np.clip(np.rint(verts).astype(int), 0, np.array(values.shape) - 1)
    gradient = np.column_stack([g[tuple(index.T)] for g in np.gradient(values)])
    if np.einsum("ij,ij->i", gradient, normals).sum() < 0:
        normals = -normals
    corners = verts[faces]
    face_normals = np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])
    if np.einsum("ij,ij->i", face_normals, normals[faces].sum(axis=1)).sum() < 0:
        faces = faces[:, ::-1].copy()
    return faces, normals


@converts(GeometryType.VOLUME_GRID, GeometryType.TRIANGLE_MESH)
def volume_grid_to_mesh(data: VolumeGrid, param: float) -> TriangleMesh:
    verts, faces, _ = _iso_surface(data, param)
    return TriangleMesh(verts, faces)


@converts(GeometryType.VOLUME_GRID, GeometryType.POINT_CLOUD)
def volume_grid_to_point_cloud(data: VolumeGrid, param: float) -> PointCloud:
    verts, _, normals = _iso_surface(data, param)
    return PointCloud(verts, property_names=list(NORMAL_CHANNELS), properties=normals)


# ----------------------------------------------------------------------
# Convex hull sources
# ----------------------------------------------------------------------


def _hull_mesh(points: np.ndarray) -> trimesh.Trimesh:
    if len(points) < 4:
        raise InvalidArgumentError(
            "A hull mesh needs at least 4 non-coplanar points", details={"points": len(points)}
        )
    return trimesh.convex.convex_hull(points)


@converts(GeometryType.CONVEX_HULL, GeometryType.TRIANGLE_MESH)
def convex_hull_to_mesh(data: ConvexHull, param: float) -> TriangleMesh:
    return TriangleMesh.from_trimesh(_hull_mesh(data.points))


@converts(GeometryType.CONVEX_HULL, GeometryType.POINT_CLOUD)
def convex_hull_to_point_cloud(data: ConvexHull, param: float) -> PointCloud:
    mesh = TriangleMesh.from_trimesh(_hull_mesh(data.points))
    dispersion = _default(
        param, mesh.mean_triangle_diameter(), "ConvexHull", "PointCloud", "dispersion"
    )
    return _sample_surface(mesh.to_trimesh(), dispersion)


# ----------------------------------------------------------------------
# Primitive sources
# ----------------------------------------------------------------------


def _primitive_resolution(data: GeometricPrimitive, param: float, target: str) -> float:
    fallback = data.size() * get_config().conversion.primitive_resolution_fraction
    resolution = _default(param, fallback, "GeometricPrimitive", target, "resolution")
    if resolution <= 0:
        raise InvalidArgumentError(
            f"A resolution is required to convert a {data.type} primitive",
            details={"primitive": data.save_string()},
        )
    return resolution


def _sphere_mesh(center: np.ndarray, radius: float, resolution: float) -> trimesh.Trimesh:
    rings = max(4, int(math.ceil(math.pi * radius / resolution)))
    sphere = trimesh.creation.uv_sphere(radius=radius, count=[rings, 2 * rings])
    sphere.apply_translation(center)
    return sphere


def _box_mesh(lower: np.ndarray, upper: np.ndarray, resolution: float) -> trimesh.Trimesh:
    box = trimesh.creation.box(
        extents=upper - lower,
        transform=trimesh.transformations.translation_matrix(0.5 * (lower + upper)),
    )
    vertices, faces = trimesh.remesh.subdivide_to_size(
        box.vertices,
        box.faces,
        max_edge=resolution,
        max_iter=get_config().conversion.max_subdivision_iterations,
    )
    return trimesh.Trimesh(vertices=vertices, faces=faces, process=True)


@converts(GeometryType.PRIMITIVE, GeometryType.TRIANGLE_MESH)
def primitive_to_mesh(data: GeometricPrimitive, param: float) -> TriangleMesh:
    if data.type not in (prim.SPHERE, prim.AABB):
        raise UnsupportedConversionError(f"GeometricPrimitive({data.type})", GeometryType.TRIANGLE_MESH.value)
    resolution = _primitive_resolution(data, param, "TriangleMesh")
    if data.type == prim.SPHERE:
        return TriangleMesh.from_trimesh(_sphere_mesh(data.center, data.radius, resolution))
    lower, upper = data.bounds()
    return TriangleMesh.from_trimesh(_box_mesh(lower, upper, resolution))


@converts(GeometryType.PRIMITIVE, GeometryType.POINT_CLOUD)
def primitive_to_point_cloud(data: GeometricPrimitive, param: float) -> PointCloud:
    if data.type == prim.POINT:
        return PointCloud(data.center[None, :])
    dispersion = _primitive_resolution(data, param, "PointCloud")
    if data.type == prim.SEGMENT:
        a, b = data.properties[:3], data.properties[3:]
        count = max(2, int(math.ceil(data.size() / dispersion)) + 1)
        return PointCloud(a + np.linspace(0.0, 1.0, count)[:, None] * (b - a))
    return _sample_surface(primitive_to_mesh(data, dispersion).to_trimesh(), dispersion)


@converts(GeometryType.PRIMITIVE, GeometryType.VOLUME_GRID)
def primitive_to_volume_grid(data: GeometricPrimitive, param: float) -> VolumeGrid:
    """Exact signed distance of spheres and boxes; points and segments are unsigned."""
    resolution = _primitive_resolution(data, param, "VolumeGrid")
    lower, upper = data.bounds()
    bmin, bmax, dims = _grid_frame(lower, upper, resolution)
    grid = VolumeGrid(bmin, bmax, np.zeros(dims))
    centers = grid.cell_centers()
    p = data.properties
    if data.type == prim.AABB:
        values, _ = analytic.aabb_signed_distance(centers, p[:3], p[3:])
    elif data.type == prim.SEGMENT:
        values = np.linalg.norm(centers - analytic.closest_points_on_segment(centers, p[:3], p[3:]), axis=1)
    else:
        values = np.linalg.norm(centers - p[:3], axis=1) - data.radius
    grid.values = values.reshape(dims)
    return grid


@converts(GeometryType.PRIMITIVE, GeometryType.CONVEX_HULL)
def primitive_to_convex_hull(data: GeometricPrimitive, param: float) -> ConvexHull:
    p = data.properties
    if data.type == prim.POINT:
        return ConvexHull(p[None, :3])
    if data.type == prim.SEGMENT:
        return ConvexHull(p.reshape(2, 3))
    if data.type == prim.AABB:
        return ConvexHull(data.corners())
    resolution = _primitive_resolution(data, param, "ConvexHull")
    return ConvexHull(_sphere_mesh(data.center, data.radius, resolution).vertices)
