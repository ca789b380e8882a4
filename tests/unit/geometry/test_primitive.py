"""
Unit tests for geometric primitives and kind tags.
"""

import numpy as np
import pytest

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.geometry.primitive import GeometricPrimitive
from polygeom.geometry.types import GeometryType, as_matrix, as_points


class TestGeometryType:
    """Tests for the kind enum and array helpers."""

    def test_parse_by_value_and_name(self):
        assert GeometryType.parse("VolumeGrid") == GeometryType.VOLUME_GRID
        assert GeometryType.parse("triangle_mesh") == GeometryType.TRIANGLE_MESH
        assert GeometryType.parse(GeometryType.GROUP) == GeometryType.GROUP

    def test_parse_unknown(self):
        with pytest.raises(InvalidArgumentError, match="Unknown geometry type"):
            GeometryType.parse("Octree")

    def test_flat_points(self):
        """Test flat 3n lists are reshaped to (n, 3)."""
        assert as_points([0, 1, 2, 3, 4, 5]).shape == (2, 3)

    def test_flat_points_bad_length(self):
        with pytest.raises(InvalidArgumentError, match="multiple of 3"):
            as_points([0, 1])

    def test_flat_matrix_is_column_major(self):
        """Test a 9-entry rotation list is read column by column."""
        R = as_matrix([0, 1, 0, -1, 0, 0, 0, 0, 1])
        assert np.allclose(R @ [1, 0, 0], [0, 1, 0])


class TestGeometricPrimitive:
    """Tests for GeometricPrimitive."""

    def test_create_sphere(self):
        sphere = GeometricPrimitive("sphere", [1, 2, 3, 0.5])
        assert sphere.radius == 0.5
        assert np.allclose(sphere.center, [1, 2, 3])
        assert sphere.is_point_like()

    def test_wrong_parameter_count(self):
        with pytest.raises(InvalidArgumentError, match="needs 4 parameters"):
            GeometricPrimitive("sphere", [0, 0, 0])

    def test_unknown_type(self):
        with pytest.raises(InvalidArgumentError, match="Unknown primitive type"):
            GeometricPrimitive("cylinder", [0, 0, 0])

    def test_save_and_load_string(self):
        """Test the text form survives a save/load cycle."""
        box = GeometricPrimitive("aabb", [0, 0, 0, 1, 2, 3])
        text = box.save_string()
        assert text.startswith("AABB ")
        loaded = GeometricPrimitive.from_string(text)
        assert loaded.type == "aabb"
        assert np.allclose(loaded.properties, box.properties)

    @pytest.mark.parametrize(
        "text, match",
        [
            ("", "Empty"),
            ("Cone 0 0 0", "Unknown primitive type"),
            ("Sphere 0 0 0", "needs 4 parameters"),
            ("Point 0 x 0", "Malformed"),
            ("Sphere 0 0 0 -1", "non-negative"),
            ("AABB 1 1 1 0 0 0", "inverted"),
        ],
    )
    def test_malformed_strings(self, text, match):
        """Test malformed text forms raise InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError, match=match):
            GeometricPrimitive.from_string(text)

    def test_setters_bump_version(self):
        prim = GeometricPrimitive()
        prim.set_segment([0, 0, 0], [1, 0, 0])
        assert prim.type == "segment"
        assert prim.version == 1
        assert prim.size() == pytest.approx(1.0)

    def test_sphere_uniform_scale(self):
        """Test spheres scale their radius under uniform scaling."""
        sphere = GeometricPrimitive("sphere", [1, 0, 0, 1])
        sphere.transform(2 * np.eye(3), [0, 0, 1])
        assert np.allclose(sphere.properties, [2, 0, 1, 2])

    def test_sphere_rejects_non_uniform_scale(self):
        sphere = GeometricPrimitive("sphere", [0, 0, 0, 1])
        with pytest.raises(InvalidArgumentError, match="uniform scaling"):
            sphere.transform(np.diag([1, 2, 1]), [0, 0, 0])

    def test_aabb_axis_permutation(self):
        """Test a 90 degree rotation keeps an AABB axis-aligned."""
        box = GeometricPrimitive("aabb", [0, 0, 0, 1, 2, 3])
        R = np.array([[0, -1, 0], [1, 0, 0], [0, 0, 1]])
        box.transform(R, [0, 0, 0])
        lower, upper = box.bounds()
        assert np.allclose(lower, [-2, 0, 0])
        assert np.allclose(upper, [0, 1, 3])

    def test_aabb_rejects_rotation(self):
        box = GeometricPrimitive("aabb", [0, 0, 0, 1, 1, 1])
        c, s = np.cos(0.3), np.sin(0.3)
        with pytest.raises(InvalidArgumentError, match="axis-aligned"):
            box.transform([[c, -s, 0], [s, c, 0], [0, 0, 1]], [0, 0, 0])

    def test_corners(self):
        box = GeometricPrimitive("aabb", [0, 0, 0, 1, 1, 1])
        corners = box.corners()
        assert corners.shape == (8, 3)
        assert {tuple(c) for c in corners} == {
            (x, y, z) for x in (0.0, 1.0) for y in (0.0, 1.0) for z in (0.0, 1.0)
        }
