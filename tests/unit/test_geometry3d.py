"""
Unit tests for the Geometry3D handle: ownership, transforms, groups, bounds
and acceleration caching.
"""

import numpy as np
import pytest

from polygeom import (
    GeometricPrimitive,
    Geometry3D,
    GeometryType,
    Ownership,
    PointCloud,
    RigidTransform,
    TriangleMesh,
)
from polygeom.core.exceptions import InvalidArgumentError, UnsupportedOperationError


def sphere(x, y, z, r):
    return Geometry3D(GeometricPrimitive("sphere", [x, y, z, r]))


class TestOwnership:
    """Tests for standalone, referenced and aliased handles."""

    def test_empty_handle(self):
        geom = Geometry3D()
        assert geom.empty()
        assert geom.type() is None
        assert geom.type_name == ""
        assert geom.ownership == Ownership.EMPTY

    def test_standalone(self, cube):
        assert cube.is_standalone()
        assert cube.type() == GeometryType.TRIANGLE_MESH

    def test_rejects_non_representation(self):
        with pytest.raises(InvalidArgumentError, match="Not a geometry representation"):
            Geometry3D(np.zeros((3, 3)))

    def test_clone_is_independent(self, cube):
        """Test mutating a clone leaves the original data untouched."""
        duplicate = cube.clone()
        duplicate.translate([5, 0, 0])

        assert np.allclose(cube.get_bb()[0], [-0.5, -0.5, -0.5])
        assert np.allclose(duplicate.get_bb()[0], [4.5, -0.5, -0.5])

    def test_clone_keeps_transform_and_margin(self, unit_sphere):
        unit_sphere.set_current_transform(np.eye(3), [1, 2, 3])
        unit_sphere.set_collision_margin(0.25)

        duplicate = unit_sphere.clone()

        assert np.allclose(duplicate.get_current_transform()[1], [1, 2, 3])
        assert duplicate.get_collision_margin() == 0.25

    def test_set_deep_copies(self, cube):
        target = Geometry3D()
        target.set(cube)
        target.translate([1, 0, 0])
        assert np.allclose(cube.get_bb()[0], [-0.5, -0.5, -0.5])

    def test_assign_shares_storage(self, cube):
        """Test an alias sees data changes made through the original."""
        alias = Geometry3D()
        alias.assign(cube)

        cube.translate([2, 0, 0])

        assert np.allclose(alias.get_bb()[0], [1.5, -0.5, -0.5])

    def test_free_clears_aliases(self, cube):
        alias = Geometry3D()
        alias.assign(cube)
        cube.free()
        assert alias.empty()

    def test_referenced_reads_and_writes_through(self, world, cube_mesh):
        """Test a referenced handle resolves and updates the world item."""
        world.set_item_geometry(7, cube_mesh)
        geom = Geometry3D()
        geom.attach(world, 7)

        assert geom.ownership == Ownership.REFERENCED
        assert geom.world_item.item_id == 7
        assert geom.data is cube_mesh

        geom.set_data(GeometricPrimitive("point", [0, 0, 0]))
        assert world.item_geometry(7).kind == GeometryType.PRIMITIVE

    def test_free_referenced_detaches(self, world, cube_mesh):
        world.set_item_geometry(1, cube_mesh)
        geom = Geometry3D()
        geom.attach(world, 1)
        geom.free()
        assert geom.empty()
        assert world.item_geometry(1) is cube_mesh

    def test_clone_of_referenced_is_standalone(self, world, cube_mesh):
        world.set_item_geometry(3, cube_mesh)
        geom = Geometry3D()
        geom.attach(world, 3)
        duplicate = geom.clone()
        assert duplicate.is_standalone()
        assert duplicate.data is not cube_mesh

    def test_typed_accessor_mismatch(self, cube):
        with pytest.raises(InvalidArgumentError, match="not a PointCloud"):
            cube.get_point_cloud()

    def test_typed_setter_copies(self):
        cloud = PointCloud([[0, 0, 0]])
        geom = Geometry3D()
        geom.set_point_cloud(cloud)
        cloud.add_point([1, 1, 1])
        assert geom.get_point_cloud().num_points() == 1


class TestTransforms:
    """Tests for current and committed transforms."""

    def test_current_transform_is_virtual(self, cube):
        """Test the current transform moves queries but not the data."""
        cube.set_current_transform(np.eye(3), [10, 0, 0])
        assert np.allclose(cube.get_triangle_mesh().vertices.min(axis=0), [-0.5, -0.5, -0.5])
        assert np.allclose(cube.get_bb()[0], [9.5, -0.5, -0.5])

    def test_current_transform_must_be_rotation(self, cube):
        with pytest.raises(InvalidArgumentError, match="rotation"):
            cube.set_current_transform(2 * np.eye(3), [0, 0, 0])

    def test_committed_transform_resets_current(self, cube):
        cube.set_current_transform(np.eye(3), [1, 0, 0])
        cube.translate([0, 2, 0])
        R, t = cube.get_current_transform()
        assert np.allclose(R, np.eye(3))
        assert np.allclose(t, 0)
        assert np.allclose(cube.get_bb()[0], [-0.5, 1.5, -0.5])

    def test_scale(self, cube):
        cube.scale(2.0)
        assert np.allclose(cube.get_bb()[1], [1, 1, 1])
        cube.scale(1.0, 2.0, 0.5)
        assert np.allclose(cube.get_bb()[1], [1, 2, 0.5])

    def test_scale_needs_one_or_three(self, cube):
        with pytest.raises(InvalidArgumentError, match="one or three"):
            cube.scale(1.0, 2.0)

    def test_transform_empty(self):
        with pytest.raises(InvalidArgumentError, match="empty"):
            Geometry3D().translate([1, 0, 0])

    def test_tight_box_under_rotation(self, cube):
        """Test the tight box is never larger than the loose one."""
        pose = RigidTransform.from_axis_angle([0, 0, 1], np.pi / 4)
        cube.set_current_transform(pose.R, pose.t)
        loose_lo, loose_hi = cube.get_bb()
        tight_lo, tight_hi = cube.get_bb_tight()
        assert np.all(tight_lo >= loose_lo - 1e-12)
        assert np.all(tight_hi <= loose_hi + 1e-12)
        assert tight_hi[0] == pytest.approx(np.sqrt(0.5))

    def test_sphere_bounds(self, unit_sphere):
        lower, upper = unit_sphere.get_bb_tight()
        assert np.allclose(lower, -1)
        assert np.allclose(upper, 1)

    def test_negative_margin(self, cube):
        with pytest.raises(InvalidArgumentError, match="non-negative"):
            cube.set_collision_margin(-0.1)


class TestGroups:
    """Tests for group handles."""

    def test_elements(self):
        group = Geometry3D()
        group.set_group()
        group.set_element(0, sphere(0, 0, 0, 1))
        group.set_element(1, sphere(5, 0, 0, 1))

        assert group.num_elements() == 2
        assert group.get_element(1).get_geometric_primitive().center[0] == 5

    def test_element_out_of_range(self):
        group = Geometry3D()
        group.set_group()
        with pytest.raises(InvalidArgumentError, match="out of range"):
            group.set_element(2, sphere(0, 0, 0, 1))

    def test_set_element_stores_clone(self):
        group = Geometry3D()
        group.set_group()
        child = sphere(0, 0, 0, 1)
        group.set_element(0, child)
        child.translate([1, 0, 0])
        assert np.allclose(group.get_element(0).get_geometric_primitive().center, 0)

    def test_group_bounds(self):
        group = Geometry3D()
        group.set_group()
        group.set_element(0, sphere(0, 0, 0, 1))
        group.set_element(1, sphere(5, 0, 0, 1))
        lower, upper = group.get_bb()
        assert np.allclose(lower, [-1, -1, -1])
        assert np.allclose(upper, [6, 1, 1])

    def test_group_transform_composes_child_poses(self):
        group = Geometry3D()
        group.set_group()
        group.set_element(0, sphere(0, 0, 0, 1))
        group.translate([0, 0, 3])
        _, t = group.get_element(0).get_current_transform()
        assert np.allclose(t, [0, 0, 3])

    def test_group_rejects_non_uniform_scale(self):
        group = Geometry3D()
        group.set_group()
        group.set_element(0, sphere(0, 0, 0, 1))
        with pytest.raises(InvalidArgumentError, match="uniform scaling"):
            group.scale(1.0, 2.0, 1.0)

    def test_convex_hull_group(self, cube):
        """Test the hull of two posed geometries covers both."""
        other = cube.clone()
        other.set_current_transform(np.eye(3), [3, 0, 0])
        hull = Geometry3D()
        hull.set_convex_hull_group(cube, other)

        assert hull.type() == GeometryType.CONVEX_HULL
        lower, upper = hull.get_bb()
        assert np.allclose(lower, [-0.5, -0.5, -0.5])
        assert np.allclose(upper, [3.5, 0.5, 0.5])


class TestAccelerationCache:
    """Tests for lazily built acceleration structures."""

    def test_built_on_first_query(self, cube):
        assert not cube.cache_is_warm()
        cube.distance_point([2, 0, 0])
        assert cube.cache_is_warm()

    def test_current_transform_keeps_cache(self, cube):
        cube.distance_point([2, 0, 0])
        cube.set_current_transform(np.eye(3), [1, 0, 0])
        assert cube.cache_is_warm()

    def test_data_change_invalidates(self, cube):
        cube.distance_point([2, 0, 0])
        cube.translate([1, 0, 0])
        assert not cube.cache_is_warm()

    def test_direct_mutation_with_mark_modified(self, cube):
        """Test in-place array edits are picked up once marked."""
        structure = cube.acceleration_structure()
        mesh = cube.get_triangle_mesh()
        mesh.vertices += 1.0
        mesh.mark_modified()
        assert not cube.cache_is_warm()
        assert cube.acceleration_structure() is not structure

    def test_clone_has_cold_cache(self, cube):
        cube.distance_point([2, 0, 0])
        duplicate = cube.clone()
        assert not duplicate.cache_is_warm()
        assert cube.cache_is_warm()

    def test_empty_query(self, cube):
        with pytest.raises(InvalidArgumentError, match="empty"):
            Geometry3D().distance(cube)


class TestSupport:
    """Tests for support points."""

    def test_hull_support(self, cube_hull):
        geom = Geometry3D(cube_hull)
        assert np.allclose(geom.support([1, 1, 1]), [0.5, 0.5, 0.5])

    def test_support_with_margin_and_pose(self, cube_hull):
        geom = Geometry3D(cube_hull)
        geom.set_current_transform(np.eye(3), [1, 0, 0])
        geom.set_collision_margin(0.5)
        assert np.allclose(geom.support([1, 0, 0])[0], 2.0)

    def test_support_unsupported_for_mesh(self, cube):
        with pytest.raises(UnsupportedOperationError, match="support"):
            cube.support([1, 0, 0])


class TestMeshFromTriangles:
    """Tests for handles built from raw mesh data."""

    def test_degenerate_query(self):
        """Test an empty mesh answers with the upper bound instead of failing."""
        geom = Geometry3D(TriangleMesh())
        result = geom.distance_point([0, 0, 0])
        assert np.isinf(result.d)
