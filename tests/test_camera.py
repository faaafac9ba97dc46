"""Tests for the pinhole camera matrices and primary ray generation.

Tests cover:
- Camera-to-world and projection matrix construction and validation
- Camera state setup
- Ray generation through image center and edges
- Pixel to normalized coordinate conversion
"""

import math

import numpy as np
import pytest
import taichi as ti


def _generate(uvs):
    """Generate rays for a list of (u, v) image coordinates.

    Returns:
        Tuple of (origins, directions) as (N, 3) arrays.
    """
    from src.pathtracer.camera.pinhole import generate_camera_ray

    count = len(uvs)
    uv_field = ti.Vector.field(2, dtype=ti.f32, shape=count)
    origins = ti.Vector.field(3, dtype=ti.f32, shape=count)
    directions = ti.Vector.field(3, dtype=ti.f32, shape=count)
    uv_field.from_numpy(np.asarray(uvs, dtype=np.float32))

    @ti.kernel
    def test_kernel():
        for k in range(count):
            ray = generate_camera_ray(uv_field[k])
            origins[k] = ray.origin
            directions[k] = ray.direction

    test_kernel()
    return origins.to_numpy(), directions.to_numpy()


class TestPinholeCameraMatrices:
    """Tests for PinholeCamera matrix construction."""

    def test_camera_to_world_is_orthonormal(self):
        from src.pathtracer.camera.pinhole import PinholeCamera

        camera = PinholeCamera(lookfrom=(3.0, 4.0, 5.0), lookat=(0.0, 1.0, 0.0))
        matrix = camera.camera_to_world()
        rotation = matrix[:3, :3].astype(np.float64)

        np.testing.assert_allclose(rotation.T @ rotation, np.eye(3), atol=1e-6)
        np.testing.assert_allclose(matrix[:3, 3], (3.0, 4.0, 5.0))
        np.testing.assert_allclose(matrix[3], (0.0, 0.0, 0.0, 1.0))

    def test_camera_looks_down_negative_z(self):
        """The camera's -z axis points from lookfrom toward lookat."""
        from src.pathtracer.camera.pinhole import PinholeCamera

        camera = PinholeCamera(lookfrom=(0.0, 0.0, 10.0), lookat=(0.0, 0.0, 0.0))
        forward = -camera.camera_to_world()[:3, 2]

        np.testing.assert_allclose(forward, (0.0, 0.0, -1.0), atol=1e-6)

    def test_inverse_projection_inverts_projection(self):
        from src.pathtracer.camera.pinhole import PinholeCamera

        camera = PinholeCamera(
            lookfrom=(0.0, 0.0, 1.0), lookat=(0.0, 0.0, 0.0), vfov=45.0, aspect_ratio=1.5
        )
        product = camera.projection().astype(np.float64) @ camera.inverse_projection()

        np.testing.assert_allclose(product, np.eye(4), atol=1e-4)

    def test_rejects_coincident_points(self):
        from src.pathtracer.camera.pinhole import PinholeCamera

        camera = PinholeCamera(lookfrom=(1.0, 1.0, 1.0), lookat=(1.0, 1.0, 1.0))
        with pytest.raises(ValueError, match="differ"):
            camera.camera_to_world()

    def test_rejects_vup_parallel_to_view(self):
        from src.pathtracer.camera.pinhole import PinholeCamera

        camera = PinholeCamera(lookfrom=(0.0, 10.0, 0.0), lookat=(0.0, 0.0, 0.0))
        with pytest.raises(ValueError, match="parallel"):
            camera.camera_to_world()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"vfov": 0.0},
            {"vfov": 180.0},
            {"aspect_ratio": 0.0},
            {"near": 0.0},
            {"near": 10.0, "far": 5.0},
        ],
    )
    def test_rejects_invalid_projection(self, kwargs):
        from src.pathtracer.camera.pinhole import PinholeCamera

        camera = PinholeCamera(lookfrom=(0.0, 0.0, 1.0), lookat=(0.0, 0.0, 0.0), **kwargs)
        with pytest.raises(ValueError):
            camera.projection()


class TestCameraSetup:
    """Tests for the global camera state."""

    def test_setup_marks_initialized(self):
        from src.pathtracer.camera.pinhole import (
            PinholeCamera,
            get_camera_matrices,
            is_camera_initialized,
            setup_camera,
        )

        camera = PinholeCamera(lookfrom=(1.0, 2.0, 3.0), lookat=(0.0, 0.0, 0.0))
        assert not is_camera_initialized()

        setup_camera(camera.camera_to_world(), camera.inverse_projection())

        assert is_camera_initialized()
        c2w, inv_proj = get_camera_matrices()
        np.testing.assert_allclose(c2w, camera.camera_to_world(), rtol=1e-6)
        np.testing.assert_allclose(inv_proj, camera.inverse_projection(), rtol=1e-6)

    def test_clear_camera(self):
        from src.pathtracer.camera.pinhole import clear_camera, is_camera_initialized, setup_camera

        setup_camera(np.eye(4), np.eye(4))
        clear_camera()

        assert not is_camera_initialized()

    def test_rejects_wrong_shape(self):
        from src.pathtracer.camera.pinhole import setup_camera

        with pytest.raises(ValueError, match="4x4"):
            setup_camera(np.eye(3), np.eye(4))

    def test_rejects_non_finite(self):
        from src.pathtracer.camera.pinhole import setup_camera

        matrix = np.eye(4)
        matrix[1, 1] = np.inf
        with pytest.raises(ValueError, match="non-finite"):
            setup_camera(np.eye(4), matrix)


class TestRayGeneration:
    """Tests for generate_camera_ray."""

    def _setup(self, vfov=90.0, aspect_ratio=1.0):
        from src.pathtracer.camera.pinhole import PinholeCamera, setup_camera

        camera = PinholeCamera(
            lookfrom=(0.0, 0.0, 10.0),
            lookat=(0.0, 0.0, 0.0),
            vfov=vfov,
            aspect_ratio=aspect_ratio,
        )
        setup_camera(camera.camera_to_world(), camera.inverse_projection())

    def test_center_ray_points_at_target(self):
        self._setup()
        origins, directions = _generate([(0.0, 0.0)])

        np.testing.assert_allclose(origins[0], (0.0, 0.0, 10.0), atol=1e-5)
        np.testing.assert_allclose(directions[0], (0.0, 0.0, -1.0), atol=1e-5)

    def test_edge_rays_span_field_of_view(self):
        """With a 90 degree FOV, the image edges are 45 degrees off axis."""
        self._setup(vfov=90.0)
        _, directions = _generate([(1.0, 0.0), (0.0, 1.0), (0.0, -1.0)])
        s = 1.0 / math.sqrt(2.0)

        np.testing.assert_allclose(directions[0], (s, 0.0, -s), atol=1e-4)
        np.testing.assert_allclose(directions[1], (0.0, s, -s), atol=1e-4)
        np.testing.assert_allclose(directions[2], (0.0, -s, -s), atol=1e-4)

    def test_aspect_ratio_widens_horizontal_extent(self):
        self._setup(vfov=90.0, aspect_ratio=2.0)
        _, directions = _generate([(1.0, 0.0)])
        expected = np.array([2.0, 0.0, -1.0]) / math.sqrt(5.0)

        np.testing.assert_allclose(directions[0], expected, atol=1e-4)

    def test_directions_are_unit_length(self):
        self._setup(vfov=60.0, aspect_ratio=1.5)
        _, directions = _generate([(-1.0, -1.0), (0.3, 0.7), (1.0, 1.0)])

        np.testing.assert_allclose(np.linalg.norm(directions, axis=1), 1.0, atol=1e-5)


class TestPixelToUV:
    """Tests for pixel_to_uv."""

    def test_pixel_centers(self):
        from src.pathtracer.camera.pinhole import pixel_to_uv

        result = ti.Vector.field(2, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel():
            center = ti.math.vec2(0.5, 0.5)
            result[0] = pixel_to_uv(0, 0, 4, 2, center)
            result[1] = pixel_to_uv(3, 1, 4, 2, center)

        test_kernel()
        np.testing.assert_allclose(result[0].to_numpy(), (-0.75, -0.5), atol=1e-6)
        np.testing.assert_allclose(result[1].to_numpy(), (0.75, 0.5), atol=1e-6)

    def test_offset_shifts_within_pixel(self):
        from src.pathtracer.camera.pinhole import pixel_to_uv

        result = ti.Vector.field(2, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = pixel_to_uv(0, 0, 2, 2, ti.math.vec2(0.0, 0.0))

        test_kernel()
        np.testing.assert_allclose(result[None].to_numpy(), (-1.0, -1.0), atol=1e-6)


class TestCameraStateAfterReleasedBuffers:
    """Camera and light state stay usable after other field trees are destroyed."""

    def test_setup_after_image_release_cycles(self):
        from src.pathtracer.camera.pinhole import (
            clear_camera,
            get_camera_matrices,
            is_camera_initialized,
            setup_camera,
        )
        from src.pathtracer.core.buffers import ImageBuffer
        from src.pathtracer.core.integrator import DirectionalLight, get_light, setup_light

        clear_camera()
        assert not is_camera_initialized()
        for size in range(2, 7):
            image = ImageBuffer(size, size + 1)
            image.clear()
            image.release()

        matrix = np.diag([1.0, 2.0, 3.0, 1.0])
        setup_camera(matrix, np.eye(4))
        setup_light(DirectionalLight(direction=(0.0, -2.0, 0.0), intensity=0.5))

        assert is_camera_initialized()
        np.testing.assert_allclose(get_camera_matrices()[0], matrix)
        light = get_light()
        np.testing.assert_allclose(light.direction, (0.0, -1.0, 0.0), atol=1e-6)
        assert light.intensity == pytest.approx(0.5)
