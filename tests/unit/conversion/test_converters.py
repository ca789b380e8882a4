"""
Unit tests for conversions between representation kinds.
"""

import numpy as np
import pytest

from polygeom import ConvexHull, GeometricPrimitive, Geometry3D, GeometryType, VolumeGrid
from polygeom.conversion import CONVERTER_REGISTRY, convert_data, get_converter
from polygeom.core.exceptions import InvalidArgumentError, UnsupportedConversionError

ALL_KINDS = [
    GeometryType.PRIMITIVE,
    GeometryType.TRIANGLE_MESH,
    GeometryType.POINT_CLOUD,
    GeometryType.VOLUME_GRID,
    GeometryType.CONVEX_HULL,
]


class TestRegistry:
    """Tests for converter lookup."""

    def test_unsupported_pair(self):
        with pytest.raises(UnsupportedConversionError, match="TriangleMesh to GeometricPrimitive"):
            get_converter(GeometryType.TRIANGLE_MESH, GeometryType.PRIMITIVE)

    def test_no_group_targets(self):
        assert all(target != GeometryType.GROUP for _, target in CONVERTER_REGISTRY)

    @pytest.mark.parametrize("source", ALL_KINDS)
    def test_every_kind_reaches_mesh_or_cloud(self, source):
        targets = {t for s, t in CONVERTER_REGISTRY if s == source}
        assert targets & {GeometryType.TRIANGLE_MESH, GeometryType.POINT_CLOUD, GeometryType.CONVEX_HULL}

    def test_negative_param(self, cube_mesh):
        with pytest.raises(InvalidArgumentError, match="non-negative"):
            convert_data(cube_mesh, GeometryType.VOLUME_GRID, -1.0)


class TestMeshConversions:
    """Tests for triangle mesh sources."""

    def test_mesh_to_grid_sign(self, cube):
        """Test the grid is negative inside and positive outside the mesh."""
        grid = cube.convert("VolumeGrid", 0.1).get_volume_grid()
        centre = tuple(d // 2 for d in grid.dims)
        assert grid.values[centre] < 0
        assert grid.values[0, 0, 0] > 0
        assert np.allclose(grid.cell_size(), 0.1)

    def test_mesh_to_grid_padding(self, cube):
        grid = cube.convert(GeometryType.VOLUME_GRID, 0.1).get_volume_grid()
        assert np.all(grid.bmin <= -0.5 - 0.2 + 1e-9)
        assert np.all(grid.bmax >= 0.5 + 0.2 - 1e-9)

    def test_mesh_to_point_cloud(self, cube):
        cloud = cube.convert("PointCloud", 0.25).get_point_cloud()
        assert cloud.num_points() > 8
        assert cloud.property_names == ["normal_x", "normal_y", "normal_z"]
        assert np.all(np.abs(cloud.points) <= 0.5 + 1e-9)

    def test_mesh_to_hull(self, cube):
        hull = cube.convert("ConvexHull").get_convex_hull()
        assert hull.num_points() == 8

    def test_convert_keeps_pose(self, cube):
        cube.set_current_transform(np.eye(3), [1, 2, 3])
        cube.set_collision_margin(0.1)
        converted = cube.convert("ConvexHull")
        assert np.allclose(converted.get_current_transform()[1], [1, 2, 3])
        assert converted.get_collision_margin() == 0.1

    def test_same_kind_clones(self, cube):
        converted = cube.convert("TriangleMesh")
        assert converted.data is not cube.data
        assert np.allclose(converted.get_triangle_mesh().vertices, cube.get_triangle_mesh().vertices)

    def test_mesh_to_primitive_unsupported(self, cube):
        with pytest.raises(UnsupportedConversionError):
            cube.convert("GeometricPrimitive")

    def test_convert_empty(self):
        with pytest.raises(InvalidArgumentError, match="empty"):
            Geometry3D().convert("TriangleMesh")


class TestPointCloudConversions:
    """Tests for point cloud sources."""

    def test_structured_cloud_to_mesh(self, structured_cloud):
        mesh = convert_data(structured_cloud, GeometryType.TRIANGLE_MESH)
        # 3 x 2 quads, two triangles each
        assert mesh.num_triangles() == 12
        assert mesh.num_vertices() == 12

    def test_max_edge_drops_triangles(self, structured_cloud):
        structured_cloud.set_point(11, [0.3, 0.2, 5.0])
        mesh = convert_data(structured_cloud, GeometryType.TRIANGLE_MESH, 0.5)
        # only the triangle touching the lifted corner is too long
        assert mesh.num_triangles() == 11
        assert mesh.num_vertices() == 11

    def test_unstructured_cloud_to_mesh(self, cloud):
        with pytest.raises(InvalidArgumentError, match="structured"):
            convert_data(cloud, GeometryType.TRIANGLE_MESH)

    def test_cloud_to_grid_occupancy(self, cloud):
        grid = convert_data(cloud, GeometryType.VOLUME_GRID, 0.25)
        assert set(np.unique(grid.values)) <= {0.0, 1.0}
        assert int(grid.values.sum()) == 8

    def test_cloud_to_hull(self, cloud):
        hull = convert_data(cloud, GeometryType.CONVEX_HULL)
        assert np.allclose(hull.points, cloud.points)


class TestVolumeGridConversions:
    """Tests for volume grid sources."""

    def test_grid_to_mesh(self, sphere_grid):
        mesh = convert_data(sphere_grid, GeometryType.TRIANGLE_MESH)
        radii = np.linalg.norm(mesh.vertices, axis=1)
        assert mesh.num_triangles() > 0
        assert np.allclose(radii, 1.0, atol=0.02)

    def test_grid_to_mesh_winding_outward(self, sphere_grid):
        """Test marching-cubes normals point out of the negative region."""
        mesh = convert_data(sphere_grid, GeometryType.TRIANGLE_MESH).to_trimesh()
        assert mesh.volume > 0

    def test_iso_level(self, sphere_grid):
        mesh = convert_data(sphere_grid, GeometryType.TRIANGLE_MESH, 0.2)
        assert np.allclose(np.linalg.norm(mesh.vertices, axis=1), 1.2, atol=0.02)

    def test_level_out_of_range(self, sphere_grid):
        grid = VolumeGrid(sphere_grid.bmin, sphere_grid.bmax, np.ones(sphere_grid.dims))
        mesh = convert_data(grid, GeometryType.TRIANGLE_MESH)
        assert mesh.num_triangles() == 0

    def test_grid_to_cloud(self, sphere_grid):
        cloud = convert_data(sphere_grid, GeometryType.POINT_CLOUD)
        normals = cloud.properties
        outward = np.einsum("ij,ij->i", normals, cloud.points)
        assert cloud.num_points() > 0
        assert (outward > 0).all()


class TestHullConversions:
    """Tests for convex hull sources."""

    def test_hull_to_mesh(self, cube_hull):
        mesh = convert_data(cube_hull, GeometryType.TRIANGLE_MESH).to_trimesh()
        assert mesh.is_watertight
        assert mesh.volume == pytest.approx(1.0)

    def test_hull_needs_four_points(self):
        with pytest.raises(InvalidArgumentError, match="at least 4"):
            convert_data(ConvexHull([[0, 0, 0], [1, 0, 0]]), GeometryType.TRIANGLE_MESH)

    def test_hull_to_cloud(self, cube_hull):
        cloud = convert_data(cube_hull, GeometryType.POINT_CLOUD, 0.5)
        assert cloud.num_points() >= 8


class TestPrimitiveConversions:
    """Tests for primitive sources."""

    def test_sphere_to_mesh(self):
        sphere = GeometricPrimitive("sphere", [1, 0, 0, 2])
        mesh = convert_data(sphere, GeometryType.TRIANGLE_MESH, 0.2)
        radii = np.linalg.norm(mesh.vertices - [1, 0, 0], axis=1)
        assert np.allclose(radii, 2.0)

    def test_box_to_mesh(self):
        box = GeometricPrimitive("aabb", [0, 0, 0, 1, 2, 3])
        mesh = convert_data(box, GeometryType.TRIANGLE_MESH, 0.5).to_trimesh()
        assert mesh.volume == pytest.approx(6.0)

    def test_point_to_mesh_unsupported(self):
        with pytest.raises(UnsupportedConversionError, match=r"GeometricPrimitive\(point\)"):
            convert_data(GeometricPrimitive("point", [0, 0, 0]), GeometryType.TRIANGLE_MESH)

    def test_point_needs_resolution(self):
        with pytest.raises(InvalidArgumentError, match="resolution"):
            convert_data(GeometricPrimitive("point", [0, 0, 0]), GeometryType.VOLUME_GRID)

    def test_segment_to_cloud(self):
        segment = GeometricPrimitive("segment", [0, 0, 0, 1, 0, 0])
        cloud = convert_data(segment, GeometryType.POINT_CLOUD, 0.25)
        assert cloud.num_points() == 5
        assert np.allclose(cloud.points[-1], [1, 0, 0])

    def test_point_to_cloud(self):
        cloud = convert_data(GeometricPrimitive("point", [1, 2, 3]), GeometryType.POINT_CLOUD)
        assert np.allclose(cloud.points, [[1, 2, 3]])

    def test_sphere_to_grid(self):
        grid = convert_data(GeometricPrimitive("sphere", [0, 0, 0, 1]), GeometryType.VOLUME_GRID, 0.1)
        values = Geometry3D(grid)
        assert values.distance_point([0, 0, 0]).d == pytest.approx(-1.0, abs=0.1)

    def test_box_to_hull(self):
        hull = convert_data(GeometricPrimitive("aabb", [0, 0, 0, 1, 1, 1]), GeometryType.CONVEX_HULL)
        assert hull.num_points() == 8

    def test_default_resolution(self):
        """Test a zero parameter derives the resolution from the primitive size."""
        grid = convert_data(GeometricPrimitive("sphere", [0, 0, 0, 1]), GeometryType.VOLUME_GRID)
        assert np.allclose(grid.cell_size(), 0.2)


class TestDecomposition:
    """Tests for convex decomposition into a group."""

    def test_decomposition_group(self, cube):
        pytest.importorskip("vhacdx")
        group = cube.convert("ConvexHull", 0.05)
        assert group.type() == GeometryType.GROUP
        assert group.num_elements() >= 1
        assert group.get_element(0).type() == GeometryType.CONVEX_HULL

