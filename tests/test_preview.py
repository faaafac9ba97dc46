"""Tests for the preview module.

This module tests:
- Tone mapping functions (Reinhard, exposure, ACES)
- Gamma correction and the display pipeline
- PNG and linear export
- The orbit camera and the interactive preview's display buffer

Note: Imports are done inside test methods to avoid Taichi initialization issues.
The conftest.py fixture initializes Taichi before tests run.
"""

import numpy as np
import pytest


class TestToneMapping:
    """Tests for tone mapping functions."""

    def test_reinhard_preserves_black(self):
        from src.pathtracer.preview.display import tone_map_reinhard

        result = tone_map_reinhard(np.zeros((2, 2, 3), dtype=np.float32))

        np.testing.assert_array_equal(result, 0.0)

    def test_reinhard_formula(self):
        from src.pathtracer.preview.display import tone_map_reinhard

        image = np.array([[[0.5, 1.0, 3.0]]], dtype=np.float32)
        result = tone_map_reinhard(image)

        np.testing.assert_allclose(result[0, 0], (1.0 / 3.0, 0.5, 0.75), rtol=1e-6)

    def test_reinhard_clamps_negative_input(self):
        from src.pathtracer.preview.display import tone_map_reinhard

        result = tone_map_reinhard(np.full((1, 1, 3), -2.0, dtype=np.float32))

        np.testing.assert_array_equal(result, 0.0)

    def test_exposure_formula(self):
        from src.pathtracer.preview.display import tone_map_exposure

        image = np.ones((1, 1, 3), dtype=np.float32)
        result = tone_map_exposure(image, exposure=2.0)

        np.testing.assert_allclose(result, 1.0 - np.exp(-2.0), rtol=1e-6)

    def test_exposure_higher_value_brighter(self):
        from src.pathtracer.preview.display import tone_map_exposure

        image = np.full((1, 1, 3), 0.4, dtype=np.float32)

        assert np.all(tone_map_exposure(image, 2.0) > tone_map_exposure(image, 1.0))

    def test_aces_known_values(self):
        from src.pathtracer.preview.display import tone_map_aces

        image = np.array([[[0.0, 1.0, 100.0]]], dtype=np.float32)
        result = tone_map_aces(image)

        assert result[0, 0, 0] == pytest.approx(0.0, abs=1e-6)
        assert result[0, 0, 1] == pytest.approx(2.54 / 3.16, rel=1e-5)
        assert result[0, 0, 2] == pytest.approx(1.0, abs=1e-6)

    def test_aces_is_monotonic_and_bounded(self):
        from src.pathtracer.preview.display import tone_map_aces

        values = np.linspace(0.0, 20.0, 64, dtype=np.float32).reshape(1, 64, 1)
        result = tone_map_aces(np.repeat(values, 3, axis=2))[0, :, 0]

        assert np.all(np.diff(result) >= 0.0)
        assert result.min() >= 0.0
        assert result.max() <= 1.0


class TestGammaCorrection:
    """Tests for apply_gamma."""

    def test_gamma_1_only_clamps(self):
        from src.pathtracer.preview.display import apply_gamma

        image = np.array([[[-0.5, 0.25, 2.0]]], dtype=np.float32)

        np.testing.assert_allclose(apply_gamma(image, 1.0)[0, 0], (0.0, 0.25, 1.0))

    def test_gamma_brightens_midtones(self):
        from src.pathtracer.preview.display import apply_gamma

        image = np.full((1, 1, 3), 0.25, dtype=np.float32)

        np.testing.assert_allclose(apply_gamma(image, 2.0), 0.5, rtol=1e-6)

    def test_rejects_non_positive_gamma(self):
        from src.pathtracer.preview.display import apply_gamma

        with pytest.raises(ValueError, match="Gamma must be positive"):
            apply_gamma(np.zeros((1, 1, 3), dtype=np.float32), 0.0)


class TestProcessImageForDisplay:
    """Tests for the full display pipeline."""

    @pytest.mark.parametrize("tone_map", ["none", "reinhard", "exposure", "aces"])
    def test_output_always_in_unit_range(self, tone_map):
        from src.pathtracer.preview.display import process_image_for_display

        image = np.random.default_rng(1).uniform(-1.0, 10.0, (4, 5, 3)).astype(np.float32)
        result = process_image_for_display(image, tone_map=tone_map)

        assert result.shape == (4, 5, 3)
        assert result.dtype == np.float32
        assert result.min() >= 0.0
        assert result.max() <= 1.0

    def test_reinhard_then_gamma(self):
        from src.pathtracer.preview.display import process_image_for_display

        image = np.ones((1, 1, 3), dtype=np.float32)
        result = process_image_for_display(image, tone_map="reinhard", gamma=1.0)

        np.testing.assert_allclose(result, 0.5, rtol=1e-6)

    def test_unknown_method_raises(self):
        from src.pathtracer.preview.display import process_image_for_display

        with pytest.raises(ValueError, match="Unknown tone mapping method"):
            process_image_for_display(np.zeros((1, 1, 3), dtype=np.float32), tone_map="filmic")


class TestExport:
    """Tests for PNG and linear export."""

    def test_image_to_uint8(self):
        from src.pathtracer.preview.export import image_to_uint8

        image = np.zeros((2, 3, 3), dtype=np.float32)
        image[0] = 1.0
        image[1, 0] = 5.0
        result = image_to_uint8(image)

        assert result.shape == (2, 3, 3)
        assert result.dtype == np.uint8
        assert np.all(result[0] == 255)
        assert np.all(result[1, 0] == 255)
        assert np.all(result[1, 1:] == 0)

    def test_image_to_uint8_applies_gamma_once(self):
        from src.pathtracer.preview.export import image_to_uint8

        image = np.full((1, 1, 3), 0.25, dtype=np.float32)
        result = image_to_uint8(image, gamma=2.0)

        # 0.25 ** (1 / 2) = 0.5, which rounds to 128
        assert np.all(result == 128)

    def test_save_png_from_array(self, tmp_path):
        from PIL import Image as PILImage

        from src.pathtracer.preview.export import save_png_from_array

        image = np.zeros((6, 10, 3), dtype=np.float32)
        image[:3] = 1.0
        path = tmp_path / "array.png"
        save_png_from_array(image, path)

        with PILImage.open(path) as img:
            assert img.size == (10, 6)
            assert img.mode == "RGB"
            pixels = np.asarray(img)
        assert np.all(pixels[:3] == 255)
        assert np.all(pixels[3:] == 0)

    def test_save_png_and_linear_from_renderer(self, empty_scene, sky, make_inputs, tmp_path):
        from PIL import Image as PILImage

        from src.pathtracer.core.progressive import ProgressiveRenderer
        from src.pathtracer.preview.export import save_linear, save_png

        with ProgressiveRenderer(empty_scene, 16, 12, skybox=sky) as renderer:
            renderer.render(2, make_inputs())
            save_png(renderer, tmp_path / "render.png", tone_map="aces")
            save_linear(renderer, tmp_path / "render.npy")
            expected = renderer.get_image_numpy()

        with PILImage.open(tmp_path / "render.png") as img:
            assert img.size == (16, 12)
        np.testing.assert_array_equal(np.load(tmp_path / "render.npy"), expected)

    def test_rmse_identical_images(self):
        from src.pathtracer.preview.export import compute_rmse

        image = np.random.default_rng(2).random((4, 4, 3))

        assert compute_rmse(image, image) == 0.0

    def test_rmse_known_difference(self):
        from src.pathtracer.preview.export import compute_rmse

        a = np.zeros((2, 2, 3), dtype=np.float32)
        b = np.full((2, 2, 3), 0.5, dtype=np.float32)

        assert compute_rmse(a, b) == pytest.approx(0.5)

    def test_rmse_shape_mismatch_raises(self):
        from src.pathtracer.preview.export import compute_rmse

        with pytest.raises(ValueError, match="Image shapes must match"):
            compute_rmse(np.zeros((2, 2, 3)), np.zeros((2, 3, 3)))


class TestMatplotlibPreview:
    """Tests for the static Matplotlib views, with plt.show stubbed out."""

    @pytest.fixture
    def no_show(self, monkeypatch):
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        shown = []
        monkeypatch.setattr(plt, "show", lambda **kwargs: shown.append(kwargs))
        yield shown
        plt.close("all")

    def test_show_comparison_returns_rmse(self, no_show):
        from src.pathtracer.preview.display import show_comparison

        a = np.zeros((4, 4, 3), dtype=np.float32)
        b = np.ones((4, 4, 3), dtype=np.float32)

        assert show_comparison(a, b, gamma=1.0, block=False) == pytest.approx(1.0)
        assert no_show == [{"block": False}]

    def test_show_preview_title(self, no_show, empty_scene, sky, make_inputs):
        import matplotlib.pyplot as plt

        from src.pathtracer.core.progressive import ProgressiveRenderer
        from src.pathtracer.preview.display import show_preview

        with ProgressiveRenderer(empty_scene, 16, 12, skybox=sky) as renderer:
            renderer.render_frame(make_inputs())
            show_preview(renderer, tone_map="aces", block=False)

        assert plt.gca().get_title() == "16x12 - 1 SPP (aces)"


class TestOrbitCamera:
    """Tests for OrbitCamera."""

    def test_default_yaw_looks_toward_negative_z(self):
        from src.pathtracer.preview.interactive import OrbitCamera

        camera = OrbitCamera(distance=10.0, pitch=0.0).to_camera(1.0)

        np.testing.assert_allclose(camera.lookfrom, (0.0, 0.0, 10.0), atol=1e-9)
        assert camera.lookat == (0.0, 0.0, 0.0)

    def test_camera_round_trip(self):
        from src.pathtracer.preview.interactive import OrbitCamera

        orbit = OrbitCamera(target=(1.0, 2.0, 3.0), distance=50.0, yaw=30.0, pitch=25.0)
        restored = OrbitCamera.from_camera(orbit.to_camera(16 / 9))

        np.testing.assert_allclose(restored.target, orbit.target)
        assert restored.distance == pytest.approx(50.0)
        assert restored.yaw == pytest.approx(30.0)
        assert restored.pitch == pytest.approx(25.0)
        assert restored.vfov == orbit.vfov

    def test_far_plane_covers_orbit(self):
        from src.pathtracer.preview.interactive import OrbitCamera

        camera = OrbitCamera(distance=500.0).to_camera(1.0)

        assert camera.far == pytest.approx(5000.0)

    @pytest.mark.parametrize(
        ("keys", "yaw", "pitch"),
        [
            ({"a"}, 358.0, 20.0),
            ({"d"}, 2.0, 20.0),
            ({"w"}, 0.0, 22.0),
            ({"s"}, 0.0, 18.0),
            ({"a", "w"}, 358.0, 22.0),
            (set(), 0.0, 20.0),
        ],
    )
    def test_orbit_keys(self, keys, yaw, pitch):
        from src.pathtracer.preview.interactive import OrbitCamera

        orbit = OrbitCamera().apply_keys(keys)

        assert orbit.yaw == pytest.approx(yaw)
        assert orbit.pitch == pytest.approx(pitch)
        assert orbit.distance == pytest.approx(170.0)

    def test_zoom_keys(self):
        from src.pathtracer.preview.interactive import ZOOM_FACTOR, OrbitCamera

        orbit = OrbitCamera(distance=100.0)

        assert orbit.apply_keys({"q"}).distance == pytest.approx(100.0 / ZOOM_FACTOR)
        assert orbit.apply_keys({"e"}).distance == pytest.approx(100.0 * ZOOM_FACTOR)

    def test_limits(self):
        from src.pathtracer.preview.interactive import (
            MAX_PITCH,
            MIN_DISTANCE,
            MIN_PITCH,
            OrbitCamera,
        )

        assert OrbitCamera(pitch=88.5).apply_keys({"w"}).pitch == MAX_PITCH
        assert OrbitCamera(pitch=3.0).apply_keys({"s"}).pitch == MIN_PITCH
        assert OrbitCamera(distance=1.0).apply_keys({"q"}).distance == MIN_DISTANCE


class TestInteractivePreview:
    """Tests for InteractivePreview that don't open a window."""

    def test_init_creates_display_field(self):
        from src.pathtracer.preview.interactive import InteractivePreview

        preview = InteractivePreview(8, 4)

        assert preview.display_image.shape == (8, 4)
        assert preview.renderer is None

    def test_init_defers_window_creation(self):
        from src.pathtracer.preview.interactive import InteractivePreview

        preview = InteractivePreview(8, 4)

        assert preview._window is None

    def test_rejects_bad_size(self):
        from src.pathtracer.preview.interactive import InteractivePreview

        with pytest.raises(ValueError, match="Window size"):
            InteractivePreview(0, 4)

    def test_update_image_validates_shape(self):
        from src.pathtracer.preview.interactive import InteractivePreview

        preview = InteractivePreview(8, 4)

        with pytest.raises(ValueError, match="doesn't match"):
            preview.update_image(np.zeros((8, 4, 3), dtype=np.float32))

    def test_update_image_flips_rows(self):
        """The top NumPy row lands at the top of the field (largest y)."""
        from src.pathtracer.preview.interactive import InteractivePreview

        preview = InteractivePreview(8, 4)
        image = np.zeros((4, 8, 3), dtype=np.float32)
        image[0] = (1.0, 0.0, 0.0)
        preview.update_image(image)

        field = preview.display_image.to_numpy()
        np.testing.assert_array_equal(field[:, 3], np.tile((1.0, 0.0, 0.0), (8, 1)))
        np.testing.assert_array_equal(field[:, :3], 0.0)

    def test_is_display_available_returns_bool(self):
        from src.pathtracer.preview.interactive import InteractivePreview

        assert isinstance(InteractivePreview.is_display_available(), bool)
