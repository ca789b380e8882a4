"""
End-to-end scenarios across representations, queries and conversions.
"""

import numpy as np
import pytest
import trimesh
from scipy.spatial.transform import Rotation

from polygeom import (
    DistanceQuerySettings,
    GeometricPrimitive,
    Geometry3D,
    PointCloud,
    TriangleMesh,
)
from polygeom.core.exceptions import InvalidArgumentError


def ball(x, y, z, r):
    return Geometry3D(GeometricPrimitive("sphere", [x, y, z, r]))


class TestSphereScenario:
    """Two unit spheres three units apart."""

    def test_queries_agree(self):
        a, b = ball(0, 0, 0, 1), ball(3, 0, 0, 1)

        assert not a.collides(b)
        assert a.distance_simple(b) == pytest.approx(1.0)
        assert a.within_distance(b, 1.5)
        assert len(a.contacts(b)) == 0

    def test_upper_bound_never_exceeded(self):
        a, b = ball(0, 0, 0, 1), ball(3, 0, 0, 1)
        for bound in (0.25, 0.5, 0.99):
            assert a.distance_ext(b, DistanceQuerySettings(upper_bound=bound)).d <= bound


class TestGridRoundTrip:
    """Mesh to volume grid and back."""

    def test_cube_bounds_within_one_cell(self, cube):
        grid = cube.convert("VolumeGrid", 0.1)
        mesh = grid.convert("TriangleMesh")

        lo, hi = mesh.get_bb()

        assert np.allclose(lo, -0.5, atol=0.1)
        assert np.allclose(hi, 0.5, atol=0.1)

    def test_grid_sign_convention(self, cube):
        grid = cube.convert("VolumeGrid", 0.1)
        assert grid.distance_point([0, 0, 0]).d < 0
        assert grid.distance_point([0, 0, 0.8]).d > 0


class TestHullRoundTrip:
    """Mesh to convex hull and back."""

    def test_hull_contains_original_vertices(self):
        sphere = trimesh.creation.icosphere(subdivisions=2, radius=1.0)
        sphere.vertices[0] *= 0.5  # one dent the hull must cover
        original = Geometry3D(TriangleMesh.from_trimesh(sphere))

        hull = original.convert("ConvexHull")
        mesh = hull.convert("TriangleMesh").get_triangle_mesh().to_trimesh()

        assert mesh.is_convex
        # every original vertex lies behind every outward face plane
        offsets = (sphere.vertices @ mesh.face_normals.T) - np.einsum(
            "ij,ij->i", mesh.face_normals, mesh.triangles[:, 0]
        )
        assert (offsets <= 1e-6).all()
        for vertex in sphere.vertices:
            assert hull.distance_point(vertex).d <= 1e-6


class TestPointCloudJoin:
    """Joining clouds keeps per-point properties."""

    def test_join_preserves_association(self):
        a = PointCloud([[0, 0, 0], [1, 0, 0]], property_names=["rgb"], properties=[[1.0], [2.0]])
        b = PointCloud([[0, 5, 0]], property_names=["rgb"], properties=[[3.0]])

        a.join(b)

        assert a.num_points() == 3
        assert np.allclose(a.get_point(2), [0, 5, 0])
        assert a.get_property(2, "rgb") == 3.0

    def test_join_mismatched_properties(self):
        a = PointCloud([[0, 0, 0]], property_names=["rgb"], properties=[[1.0]])
        b = PointCloud([[0, 5, 0]], property_names=["intensity"], properties=[[3.0]])
        with pytest.raises(InvalidArgumentError, match="different properties"):
            a.join(b)
        assert a.num_points() == 1


class TestTransformLaws:
    """Committed transforms and handle isolation."""

    @pytest.mark.parametrize(
        "fixture, attribute",
        [("cube_mesh", "vertices"), ("cloud", "points"), ("cube_hull", "points")],
    )
    def test_inverse_transform_restores(self, fixture, attribute, request):
        data = request.getfixturevalue(fixture)
        before = getattr(data, attribute).copy()
        geom = Geometry3D(data)
        R = Rotation.from_euler("xyz", [0.3, -0.7, 1.1]).as_matrix()
        t = np.array([0.5, -2.0, 3.0])

        geom.transform(R, t)
        assert not np.allclose(getattr(geom.data, attribute), before)
        geom.transform(R.T, -R.T @ t)

        assert np.allclose(getattr(geom.data, attribute), before, atol=1e-9)

    def test_inverse_transform_restores_primitive(self):
        geom = Geometry3D(GeometricPrimitive("segment", [0, 0, 0, 1, 2, 3]))
        R = Rotation.from_euler("z", 0.8).as_matrix()

        geom.transform(R, [1, 1, 1])
        geom.transform(R.T, -R.T @ np.ones(3))

        assert np.allclose(geom.get_geometric_primitive().properties, [0, 0, 0, 1, 2, 3])

    def test_clone_isolated(self, cube):
        cube.distance_point([0, 0, 3])
        assert cube.cache_is_warm()

        copy = cube.clone()
        copy.translate([1, 0, 0])
        copy.get_triangle_mesh().vertices[0] = [9, 9, 9]

        assert cube.cache_is_warm()
        assert np.all(np.abs(cube.get_triangle_mesh().vertices) <= 0.5)


class TestContactsAndDistance:
    """Contacts and distance agree across kinds."""

    @pytest.mark.parametrize("offset", [0.95, 1.05, 1.3])
    def test_contacts_iff_within(self, cube, offset):
        other = ball(0, 0, 0.5 + offset, 1.0)
        padding = 0.2
        found = len(cube.contacts(other, padding, 0.0)) > 0
        assert found == cube.within_distance(other, padding)

    def test_symmetric_mesh_cloud(self, cube):
        points = Geometry3D(PointCloud([[0, 0, 2], [3, 0, 0]]))
        assert cube.distance_simple(points) == pytest.approx(points.distance_simple(cube))
