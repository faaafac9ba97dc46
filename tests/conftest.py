"""Pytest configuration for path tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.

Modules that declare Taichi fields at import time (camera, integrator) are
imported inside fixtures and tests, after Taichi is initialized.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_camera_and_light():
    """Forget the global camera and light before and after each test."""
    from src.pathtracer.camera.pinhole import clear_camera
    from src.pathtracer.core.integrator import clear_light

    clear_camera()
    clear_light()
    yield
    clear_camera()
    clear_light()


@pytest.fixture
def empty_scene():
    """A scene without spheres or meshes; only the ground plane remains."""
    from src.pathtracer.scene.config import SceneConfig
    from src.pathtracer.scene.manager import SceneManager

    scene = SceneManager(SceneConfig(sphere_count=0))
    yield scene
    scene.release()


@pytest.fixture
def sky():
    """A uniform skybox of radiance (0.5, 0.6, 0.7)."""
    from src.pathtracer.scene.skybox import Skybox

    skybox = Skybox.uniform((0.5, 0.6, 0.7))
    yield skybox
    skybox.release()


@pytest.fixture
def mirror_material():
    """A perfect black mirror: no albedo, full specular."""
    from src.pathtracer.materials.sphere_material import SphereMaterial

    return SphereMaterial(albedo=(0.0, 0.0, 0.0), specular=(1.0, 1.0, 1.0))


@pytest.fixture
def diffuse_material():
    """A grey diffuse material without specular reflection."""
    from src.pathtracer.materials.sphere_material import SphereMaterial

    return SphereMaterial(albedo=(0.5, 0.5, 0.5), specular=(0.0, 0.0, 0.0))


@pytest.fixture
def make_inputs():
    """Factory for FrameInputs looking from (0, 10, 40) toward the origin."""
    from src.pathtracer.camera.pinhole import PinholeCamera
    from src.pathtracer.core.integrator import DirectionalLight
    from src.pathtracer.core.progressive import FrameInputs

    def _make(
        width=16,
        height=12,
        lookfrom=(0.0, 10.0, 40.0),
        light_direction=(0.3, -1.0, 0.4),
        intensity=1.0,
    ):
        camera = PinholeCamera(
            lookfrom=lookfrom,
            lookat=(0.0, 0.0, 0.0),
            vfov=60.0,
            aspect_ratio=width / height,
        )
        light = DirectionalLight(direction=light_direction, intensity=intensity)
        return FrameInputs.from_camera(camera, light, width, height)

    return _make

