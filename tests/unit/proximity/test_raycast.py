"""
Unit tests for ray casting.
"""

import numpy as np
import pytest

from polygeom import GeometricPrimitive, Geometry3D
from polygeom.core.exceptions import InvalidArgumentError


def prim(kind, *values):
    return Geometry3D(GeometricPrimitive(kind, list(values)))


class TestPrimitiveRayCast:
    """Tests for rays against primitives."""

    def test_sphere_hit(self):
        hit, point = prim("sphere", 0, 0, 0, 1).ray_cast([-5, 0, 0], [1, 0, 0])
        assert hit
        assert np.allclose(point, [-1, 0, 0])

    def test_sphere_miss(self):
        hit, point = prim("sphere", 0, 0, 0, 1).ray_cast([-5, 0, 0], [0, 1, 0])
        assert not hit
        assert point is None

    def test_sphere_behind(self):
        hit, _ = prim("sphere", 0, 0, 0, 1).ray_cast([-5, 0, 0], [-1, 0, 0])
        assert not hit

    def test_origin_inside(self):
        """Test a ray starting inside the geometry hits at its origin."""
        hit, point = prim("sphere", 0, 0, 0, 1).ray_cast([0.2, 0, 0], [1, 0, 0])
        assert hit
        assert np.allclose(point, [0.2, 0, 0])

    def test_margin_pads_sphere(self):
        geom = prim("sphere", 0, 0, 0, 1)
        geom.set_collision_margin(0.5)
        _, point = geom.ray_cast([-5, 0, 0], [2, 0, 0])
        assert np.allclose(point, [-1.5, 0, 0])

    def test_box(self):
        hit, point = prim("aabb", 0, 0, 0, 1, 1, 1).ray_cast([0.5, 0.5, 4], [0, 0, -1])
        assert hit
        assert np.allclose(point, [0.5, 0.5, 1])

    def test_bare_point_never_hit(self):
        hit, _ = prim("point", 0, 0, 0).ray_cast([-1, 0, 0], [1, 0, 0])
        assert not hit

    def test_segment_capsule(self):
        geom = prim("segment", 0, 0, 0, 1, 0, 0)
        geom.set_collision_margin(0.5)
        hit, point = geom.ray_cast([0.5, 5, 0], [0, -1, 0])
        assert hit
        assert np.allclose(point, [0.5, 0.5, 0], atol=1e-6)

    def test_posed_sphere(self):
        geom = prim("sphere", 0, 0, 0, 1)
        geom.set_current_transform(np.eye(3), [0, 0, 3])
        _, point = geom.ray_cast([0, 0, 0], [0, 0, 1])
        assert np.allclose(point, [0, 0, 2])

    def test_zero_direction(self):
        with pytest.raises(InvalidArgumentError, match="non-zero"):
            prim("sphere", 0, 0, 0, 1).ray_cast([0, 0, 0], [0, 0, 0])


class TestRayCastKinds:
    """Tests for rays against data-backed kinds."""

    def test_mesh(self, cube):
        hit, point = cube.ray_cast([0.1, 0.2, 5], [0, 0, -1])
        assert hit
        assert np.allclose(point, [0.1, 0.2, 0.5])

    def test_mesh_miss(self, cube):
        hit, _ = cube.ray_cast([2, 2, 5], [0, 0, -1])
        assert not hit

    def test_mesh_with_margin(self, cube):
        cube.set_collision_margin(0.25)
        hit, point = cube.ray_cast([0, 0, 5], [0, 0, -1])
        assert hit
        assert point[2] == pytest.approx(0.75, abs=1e-6)

    def test_cloud_needs_margin(self, cloud):
        geom = Geometry3D(cloud)
        assert not geom.ray_cast([-5, -0.5, -0.5], [1, 0, 0])[0]

        geom.set_collision_margin(0.1)
        hit, point = geom.ray_cast([-5, -0.5, -0.5], [1, 0, 0])
        assert hit
        assert np.allclose(point, [-0.6, -0.5, -0.5])

    def test_grid(self, sphere_grid):
        hit, point = Geometry3D(sphere_grid).ray_cast([-3, 0, 0], [1, 0, 0])
        assert hit
        assert point[0] == pytest.approx(-1.0, abs=0.03)

    def test_hull(self, cube_hull):
        hit, point = Geometry3D(cube_hull).ray_cast([0, 0, 5], [0, 0, -1])
        assert hit
        assert np.allclose(point, [0, 0, 0.5])

    def test_group_nearest_child(self):
        group = Geometry3D()
        group.set_group()
        group.set_element(0, prim("sphere", 10, 0, 0, 1))
        group.set_element(1, prim("sphere", 4, 0, 0, 1))
        _, point = group.ray_cast([0, 0, 0], [1, 0, 0])
        assert np.allclose(point, [3, 0, 0])
