"""
Pytest configuration and shared fixtures.
"""

import itertools
import tempfile
from pathlib import Path

import numpy as np
import pytest
import trimesh

from polygeom import (
    ConvexHull,
    GeometricPrimitive,
    Geometry3D,
    PointCloud,
    TriangleMesh,
    VolumeGrid,
)
from polygeom.core.config import GeometryConfig, set_config
from polygeom.world import unregister_world

_world_ids = itertools.count(1000)


class InMemoryWorld:
    """Minimal world store keeping one representation per item id."""

    def __init__(self) -> None:
        self.world_id = next(_world_ids)
        self.items: dict[int, object] = {}

    def item_geometry(self, item_id: int):
        return self.items.get(item_id)

    def set_item_geometry(self, item_id: int, data) -> None:
        self.items[item_id] = data


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from the default configuration."""
    set_config(GeometryConfig())
    yield
    set_config(GeometryConfig())


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def world():
    """A world store, unregistered after the test."""
    store = InMemoryWorld()
    yield store
    unregister_world(store.world_id)


@pytest.fixture
def cube_mesh():
    """Unit cube centred at the origin."""
    return TriangleMesh.from_trimesh(trimesh.creation.box(extents=[1.0, 1.0, 1.0]))


@pytest.fixture
def cube(cube_mesh):
    return Geometry3D(cube_mesh)


@pytest.fixture
def unit_sphere():
    return Geometry3D(GeometricPrimitive("sphere", [0.0, 0.0, 0.0, 1.0]))


@pytest.fixture
def cloud():
    """Eight points on the corners of the unit cube."""
    corners = np.array(list(itertools.product([-0.5, 0.5], repeat=3)))
    return PointCloud(corners)


@pytest.fixture
def structured_cloud():
    """A flat 4 x 3 grid of points in the z = 0 plane with 0.1 spacing."""
    xs, ys = np.meshgrid(np.arange(4) * 0.1, np.arange(3) * 0.1)
    points = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(12)])
    return PointCloud(points, settings={"width": "4", "height": "3"})


@pytest.fixture
def sphere_grid():
    """Signed distance grid of a unit sphere sampled at 0.1."""
    axes = np.linspace(-1.45, 1.45, 30)
    x, y, z = np.meshgrid(axes, axes, axes, indexing="ij")
    values = np.sqrt(x**2 + y**2 + z**2) - 1.0
    return VolumeGrid([-1.5, -1.5, -1.5], [1.5, 1.5, 1.5], values)


@pytest.fixture
def cube_hull():
    corners = np.array(list(itertools.product([-0.5, 0.5], repeat=3)))
    return ConvexHull(corners)
