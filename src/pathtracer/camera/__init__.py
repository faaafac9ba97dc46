"""Camera module for view matrices and primary ray generation.

Components:
    pinhole: Pinhole camera description, camera matrix state and ray
        generation from camera-to-world / inverse projection matrices

Ray generation uses normalized device coordinates:
    u in [-1, 1]: left to right across image
    v in [-1, 1]: bottom to top across image
"""

from .pinhole import (
    PinholeCamera,
    clear_camera,
    generate_camera_ray,
    get_camera_matrices,
    is_camera_initialized,
    pixel_to_uv,
    setup_camera,
)

__all__ = [
    "PinholeCamera",
    "setup_camera",
    "clear_camera",
    "is_camera_initialized",
    "get_camera_matrices",
    "generate_camera_ray",
    "pixel_to_uv",
]
