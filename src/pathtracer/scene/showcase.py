"""Demo scene: random spheres on the ground plane under a sun.

The showcase scene is a field of randomly placed spheres inside a disk of
radius ``placement_radius``, optionally with a floating mirror cube at the
center, seen from above and to the side.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.pathtracer.scene.showcase import create_showcase_scene
    >>>
    >>> scene, camera, light = create_showcase_scene(aspect_ratio=16 / 9)
    >>> scene.sphere_count > 0
    True
"""

from dataclasses import dataclass

from src.pathtracer.camera.pinhole import PinholeCamera
from src.pathtracer.core.integrator import DirectionalLight
from src.pathtracer.scene.builder import make_cube_mesh, translation_matrix
from src.pathtracer.scene.config import SceneConfig
from src.pathtracer.scene.manager import SceneManager


@dataclass
class ShowcaseParams:
    """Parameters of the showcase camera, light and cube.

    Attributes:
        camera_distance: Horizontal distance of the camera from the center,
            as a multiple of the placement radius.
        camera_height: Camera height, as a multiple of the placement radius.
        vfov: Vertical field of view in degrees.
        light_pitch: Sun elevation in degrees.
        light_yaw: Sun heading in degrees.
        light_intensity: Sun brightness.
        cube_size: Edge length of the mirror cube (0 disables it).
    """

    camera_distance: float = 1.6
    camera_height: float = 0.6
    vfov: float = 50.0
    light_pitch: float = 50.0
    light_yaw: float = -30.0
    light_intensity: float = 1.0
    cube_size: float = 18.0


def create_showcase_camera(
    config: SceneConfig,
    params: ShowcaseParams,
    aspect_ratio: float,
) -> PinholeCamera:
    """Create the default camera looking at the sphere field."""
    r = config.placement_radius
    return PinholeCamera(
        lookfrom=(0.0, params.camera_height * r, params.camera_distance * r),
        lookat=(0.0, 0.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=params.vfov,
        aspect_ratio=aspect_ratio,
        far=10.0 * r,
    )


def create_showcase_scene(
    config: SceneConfig | None = None,
    params: ShowcaseParams | None = None,
    aspect_ratio: float = 16.0 / 9.0,
) -> tuple[SceneManager, PinholeCamera, DirectionalLight]:
    """Create the showcase scene with its camera and light.

    Args:
        config: Sphere placement parameters. Defaults to SceneConfig().
        params: Camera, light and cube parameters.
        aspect_ratio: Width / height of the output image.

    Returns:
        A tuple of (scene, camera, light).

    Raises:
        ValueError: If any parameter is invalid.
    """
    config = config if config is not None else SceneConfig()
    params = params if params is not None else ShowcaseParams()

    scene = SceneManager(config)

    if params.cube_size > 0.0:
        vertices, indices = make_cube_mesh(params.cube_size)
        # Floats above the tallest possible sphere
        height = 2.0 * config.radius_range[1] + params.cube_size
        scene.register_renderable(translation_matrix(0.0, height, 0.0), vertices, indices)

    camera = create_showcase_camera(config, params, aspect_ratio)
    light = DirectionalLight.from_euler(
        params.light_pitch, params.light_yaw, params.light_intensity
    )
    return scene, camera, light
