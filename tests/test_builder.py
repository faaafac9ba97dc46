"""Tests for random sphere generation and mesh buffer flattening.

Tests cover:
- Determinism and non-overlap of build_random_spheres
- Sphere materials and buffer packing
- Index offsets and descriptors produced by rebuild_mesh_buffers
- Validation of renderable mesh data
- Buffer limits
"""

import itertools
import math

import numpy as np
import pytest

from src.pathtracer.scene import builder
from src.pathtracer.scene.builder import (
    MESH_OBJECT_STRIDE,
    SPHERE_STRIDE,
    GeometryBufferError,
    RenderableObject,
    build_random_spheres,
    make_cube_mesh,
    make_quad_mesh,
    rebuild_mesh_buffers,
    spheres_to_array,
    translation_matrix,
)


def _spheres(seed=3, count=60, radius_range=(1.0, 4.0), placement_radius=40.0):
    return build_random_spheres(seed, count, radius_range, placement_radius)


class TestBuildRandomSpheres:
    """Tests for build_random_spheres."""

    def test_same_seed_gives_same_spheres(self):
        assert _spheres(seed=11) == _spheres(seed=11)

    def test_negative_seed(self):
        """Negative seeds are accepted and just as deterministic."""
        spheres = _spheres(seed=-5)

        assert len(spheres) > 0
        assert spheres == _spheres(seed=-5)
        assert spheres != _spheres(seed=5)

    def test_different_seeds_differ(self):
        assert _spheres(seed=1) != _spheres(seed=2)

    def test_spheres_never_overlap(self):
        """Every accepted pair is at least the sum of radii apart."""
        spheres = _spheres(count=200, placement_radius=30.0)

        for a, b in itertools.combinations(spheres, 2):
            distance = math.dist(a.position, b.position)
            assert distance >= a.radius + b.radius - 1e-9

    def test_overlapping_candidates_are_dropped(self):
        """A crowded disk accepts fewer spheres than candidates."""
        spheres = _spheres(count=200, radius_range=(3.0, 3.0), placement_radius=10.0)
        assert 0 < len(spheres) < 200

    def test_spheres_rest_on_ground(self):
        for sphere in _spheres():
            assert sphere.position[1] == sphere.radius

    def test_spheres_within_bounds(self):
        radius_range = (1.0, 4.0)
        for sphere in _spheres(radius_range=radius_range, placement_radius=40.0):
            assert radius_range[0] <= sphere.radius <= radius_range[1]
            assert math.hypot(sphere.position[0], sphere.position[2]) <= 40.0 + 1e-9

    def test_zero_count(self):
        assert _spheres(count=0) == []

    @pytest.mark.parametrize(
        "count, radius_range, placement_radius",
        [
            (-1, (1.0, 2.0), 10.0),
            (5, (0.0, 2.0), 10.0),
            (5, (3.0, 2.0), 10.0),
            (5, (1.0, 2.0), -10.0),
        ],
    )
    def test_invalid_parameters(self, count, radius_range, placement_radius):
        with pytest.raises(ValueError):
            build_random_spheres(0, count, radius_range, placement_radius)

    def test_materials_are_physically_bounded(self):
        """Specular colors never exceed 1, so mirrors never gain energy."""
        for sphere in _spheres(count=200, placement_radius=200.0):
            material = sphere.material
            assert all(0.0 <= c <= 1.0 for c in material.specular)
            assert all(c >= 0.0 for c in material.albedo)
            assert 0.0 <= material.smoothness <= 1.0


class TestSpheresToArray:
    """Tests for sphere buffer packing."""

    def test_row_layout(self):
        spheres = _spheres(count=10)
        array = spheres_to_array(spheres)

        assert array.shape == (len(spheres), SPHERE_STRIDE)
        assert array.dtype == np.float32
        first = spheres[0]
        np.testing.assert_allclose(array[0, 0:3], first.position, rtol=1e-6)
        assert array[0, 3] == pytest.approx(first.radius)
        np.testing.assert_allclose(array[0, 4:7], first.material.albedo, rtol=1e-6)
        np.testing.assert_allclose(array[0, 7:10], first.material.specular, rtol=1e-6)

    def test_empty(self):
        assert spheres_to_array([]).shape == (0, SPHERE_STRIDE)


class TestRenderableObject:
    """Tests for RenderableObject.create validation."""

    def test_create_normalizes_dtypes(self):
        vertices, indices = make_quad_mesh()
        obj = RenderableObject.create(np.eye(4), vertices.tolist(), indices.tolist())

        assert obj.transform.dtype == np.float32
        assert obj.vertices.dtype == np.float32
        assert obj.indices.dtype == np.int32

    def test_rejects_bad_transform(self):
        vertices, indices = make_quad_mesh()
        with pytest.raises(ValueError, match="4x4"):
            RenderableObject.create(np.eye(3), vertices, indices)

    def test_rejects_non_finite_transform(self):
        vertices, indices = make_quad_mesh()
        transform = np.eye(4)
        transform[0, 3] = np.nan
        with pytest.raises(ValueError, match="non-finite"):
            RenderableObject.create(transform, vertices, indices)

    def test_rejects_partial_triangle(self):
        vertices, _ = make_quad_mesh()
        with pytest.raises(ValueError, match="multiple of 3"):
            RenderableObject.create(np.eye(4), vertices, [0, 1])

    def test_rejects_out_of_range_index(self):
        vertices, _ = make_quad_mesh()
        with pytest.raises(ValueError, match="Indices must lie"):
            RenderableObject.create(np.eye(4), vertices, [0, 1, 4])

    def test_rejects_bad_vertex_shape(self):
        with pytest.raises(ValueError, match=r"\(N, 3\)"):
            RenderableObject.create(np.eye(4), np.zeros((3, 2)), [0, 1, 2])

    def test_rejects_specular_above_one(self):
        vertices, indices = make_quad_mesh()
        with pytest.raises(ValueError, match="Specular"):
            RenderableObject.create(np.eye(4), vertices, indices, specular=(1.0, 1.2, 1.0))


class TestRebuildMeshBuffers:
    """Tests for rebuild_mesh_buffers."""

    def _two_meshes(self):
        quad_vertices, quad_indices = make_quad_mesh()
        cube_vertices, cube_indices = make_cube_mesh()
        quad = RenderableObject.create(
            translation_matrix(0.0, 1.0, 0.0), quad_vertices, quad_indices
        )
        cube = RenderableObject.create(
            translation_matrix(5.0, 2.0, 0.0, scale=2.0),
            cube_vertices,
            cube_indices,
            albedo=(0.1, 0.2, 0.3),
            specular=(0.4, 0.5, 0.6),
        )
        return quad, cube

    def test_empty_registry(self):
        meshes = rebuild_mesh_buffers([])

        assert meshes.mesh_count == 0
        assert meshes.vertices.shape == (0, 3)
        assert meshes.indices.shape == (0,)
        assert meshes.mesh_objects.shape == (0, MESH_OBJECT_STRIDE)

    def test_index_ranges_are_contiguous(self):
        """Each mesh's index range starts where the previous one ends."""
        quad, cube = self._two_meshes()
        meshes = rebuild_mesh_buffers([quad, cube])

        assert meshes.index_range(0) == (0, 6)
        assert meshes.index_range(1) == (6, 36)
        assert len(meshes.indices) == 42

    def test_index_ranges_follow_custom_sizes(self):
        vertices = np.zeros((4, 3), dtype=np.float32)
        first = RenderableObject.create(np.eye(4), vertices, [0, 1, 2])
        second = RenderableObject.create(np.eye(4), vertices, [0, 1, 2, 1, 2, 3])
        meshes = rebuild_mesh_buffers([first, second])

        assert meshes.index_range(0) == (0, 3)
        assert meshes.index_range(1) == (3, 6)

    def test_indices_are_offset_by_preceding_vertices(self):
        quad, cube = self._two_meshes()
        meshes = rebuild_mesh_buffers([quad, cube])

        offset, count = meshes.index_range(1)
        np.testing.assert_array_equal(
            meshes.indices[offset : offset + count], cube.indices + len(quad.vertices)
        )
        # Every index of a mesh refers to that mesh's own vertices
        assert meshes.indices[:6].max() < len(quad.vertices)
        assert meshes.indices[6:].min() >= len(quad.vertices)

    def test_descriptor_layout(self):
        quad, cube = self._two_meshes()
        meshes = rebuild_mesh_buffers([quad, cube])
        row = meshes.mesh_objects[1]

        np.testing.assert_allclose(row[:16].reshape(4, 4), cube.transform)
        np.testing.assert_allclose(row[18:21], (0.1, 0.2, 0.3), rtol=1e-6)
        np.testing.assert_allclose(row[21:24], (0.4, 0.5, 0.6), rtol=1e-6)

    def test_rebuild_is_idempotent(self):
        quad, cube = self._two_meshes()
        a = rebuild_mesh_buffers([quad, cube])
        b = rebuild_mesh_buffers([quad, cube])

        np.testing.assert_array_equal(a.vertices, b.vertices)
        np.testing.assert_array_equal(a.indices, b.indices)
        np.testing.assert_array_equal(a.mesh_objects, b.mesh_objects)

    def test_index_limit(self, monkeypatch):
        """Exceeding the index limit raises GeometryBufferError."""
        monkeypatch.setattr(builder, "MAX_MESH_INDICES", 40)
        quad, cube = self._two_meshes()

        with pytest.raises(GeometryBufferError, match="indices"):
            rebuild_mesh_buffers([quad, cube])

    def test_vertex_limit(self, monkeypatch):
        monkeypatch.setattr(builder, "MAX_MESH_VERTICES", 10)
        quad, cube = self._two_meshes()

        with pytest.raises(GeometryBufferError, match="vertices"):
            rebuild_mesh_buffers([quad, cube])


class TestMeshFactories:
    """Tests for the quad and cube helpers."""

    def test_quad(self):
        vertices, indices = make_quad_mesh(2.0)

        assert vertices.shape == (4, 3)
        assert len(indices) == 6
        assert np.all(vertices[:, 1] == 0.0)
        assert np.abs(vertices).max() == 1.0

    def test_cube(self):
        vertices, indices = make_cube_mesh(4.0)

        assert vertices.shape == (8, 3)
        assert len(indices) == 36
        assert np.all(np.abs(vertices) == 2.0)

    def test_translation_matrix(self):
        matrix = translation_matrix(1.0, 2.0, 3.0, scale=2.0)
        point = matrix @ np.array([1.0, 1.0, 1.0, 1.0])

        np.testing.assert_allclose(point, (3.0, 4.0, 5.0, 1.0))
