"""Pinhole camera matrices and camera ray generation.

The trace kernel does not know about look-at vectors or fields of view. It
consumes two 4x4 matrices, as an engine camera would provide them:

- camera-to-world: maps camera space (looking down -z, y up) to world space.
- inverse projection: maps clip space back to camera space.

A primary ray for the normalized pixel coordinate ``uv`` in [-1, 1]^2 starts
at the camera position and points along the unprojected clip-space point
(uv, 0, 1), rotated into world space.

PinholeCamera is a convenience description that produces both matrices with
an OpenGL-style perspective projection.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.pathtracer.camera.pinhole import PinholeCamera, setup_camera
    >>>
    >>> camera = PinholeCamera(
    ...     lookfrom=(0.0, 10.0, 40.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=16.0 / 9.0,
    ... )
    >>> setup_camera(camera.camera_to_world(), camera.inverse_projection())
    >>>
    >>> @ti.kernel
    ... def render():
    ...     ray = generate_camera_ray(ti.math.vec2(0.0, 0.0))  # Image center
"""

import math
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.pathtracer.core.ray import Ray, make_ray

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        lookfrom: Camera position in world space (x, y, z).
        lookat: Point the camera is looking at in world space (x, y, z).
        vup: Up direction vector for camera orientation (typically (0, 1, 0)).
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height of the output image.
        near: Distance of the near clipping plane.
        far: Distance of the far clipping plane.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = 60.0
    aspect_ratio: float = 1.0
    near: float = 0.3
    far: float = 1000.0

    def camera_to_world(self) -> npt.NDArray[np.float32]:
        """Build the camera-to-world matrix.

        The camera looks down its local -z axis, with +x to the right and +y
        up, like an OpenGL view space.

        Raises:
            ValueError: If lookfrom equals lookat or vup is parallel to the
                view direction.
        """
        lookfrom = np.asarray(self.lookfrom, dtype=np.float64)
        lookat = np.asarray(self.lookat, dtype=np.float64)
        vup = np.asarray(self.vup, dtype=np.float64)

        # w points from lookat toward lookfrom (backward)
        w = lookfrom - lookat
        w_len = np.linalg.norm(w)
        if w_len < 1e-12:
            raise ValueError("Camera lookfrom and lookat must differ")
        w = w / w_len

        # u points right (perpendicular to w and vup)
        u = np.cross(vup, w)
        u_len = np.linalg.norm(u)
        if u_len < 1e-12:
            raise ValueError("Camera vup must not be parallel to the view direction")
        u = u / u_len

        # v points up in the camera's frame
        v = np.cross(w, u)

        matrix = np.eye(4, dtype=np.float64)
        matrix[:3, 0] = u
        matrix[:3, 1] = v
        matrix[:3, 2] = w
        matrix[:3, 3] = lookfrom
        return matrix.astype(np.float32)

    def projection(self) -> npt.NDArray[np.float32]:
        """Build the OpenGL-style perspective projection matrix."""
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"Vertical FOV must be in (0, 180) degrees, got {self.vfov}")
        if self.aspect_ratio <= 0.0:
            raise ValueError(f"Aspect ratio must be positive, got {self.aspect_ratio}")
        if not 0.0 < self.near < self.far:
            raise ValueError(
                f"Clipping planes must satisfy 0 < near < far, got {self.near}, {self.far}"
            )

        f = 1.0 / math.tan(math.radians(self.vfov) / 2.0)
        n, fa = self.near, self.far
        matrix = np.zeros((4, 4), dtype=np.float64)
        matrix[0, 0] = f / self.aspect_ratio
        matrix[1, 1] = f
        matrix[2, 2] = (fa + n) / (n - fa)
        matrix[2, 3] = 2.0 * fa * n / (n - fa)
        matrix[3, 2] = -1.0
        return matrix.astype(np.float32)

    def inverse_projection(self) -> npt.NDArray[np.float32]:
        """Build the inverse of the projection matrix."""
        inverse = np.linalg.inv(self.projection().astype(np.float64))
        return inverse.astype(np.float32)


# =============================================================================
# Taichi Fields for Camera State (GPU-accessible)
# =============================================================================

# The camera state lives in its own SNode tree, which is never destroyed
_camera_to_world = ti.Matrix.field(4, 4, dtype=ti.f32)
_inverse_projection = ti.Matrix.field(4, 4, dtype=ti.f32)
_camera_initialized = ti.field(dtype=ti.i32)
_camera_fields = ti.FieldsBuilder()
_camera_fields.place(_camera_to_world, _inverse_projection, _camera_initialized)
_camera_tree = _camera_fields.finalize()

mat4 = ti.types.matrix(4, 4, ti.f32)


@ti.kernel
def _load_camera(camera_to_world: mat4, inverse_projection: mat4, initialized: ti.i32):
    _camera_to_world[None] = camera_to_world
    _inverse_projection[None] = inverse_projection
    _camera_initialized[None] = initialized


def _as_matrix(name: str, matrix: Any) -> npt.NDArray[np.float32]:
    """Validate a 4x4 finite matrix."""
    array = np.asarray(matrix, dtype=np.float32)
    if array.shape != (4, 4):
        raise ValueError(f"{name} must be a 4x4 matrix, got shape {array.shape}")
    if not np.all(np.isfinite(array)):
        raise ValueError(f"{name} contains non-finite values")
    return array


def setup_camera(camera_to_world: Any, inverse_projection: Any) -> None:
    """Load the camera matrices used by generate_camera_ray.

    Args:
        camera_to_world: 4x4 camera-to-world matrix.
        inverse_projection: 4x4 inverse projection matrix.

    Raises:
        ValueError: If either matrix is not a finite 4x4 matrix.
    """
    c2w = _as_matrix("Camera-to-world matrix", camera_to_world)
    inv_proj = _as_matrix("Inverse projection matrix", inverse_projection)
    _load_camera(ti.Matrix(c2w.tolist()), ti.Matrix(inv_proj.tolist()), 1)


def is_camera_initialized() -> bool:
    """Check whether setup_camera has been called."""
    return bool(_camera_initialized.to_numpy())


def clear_camera() -> None:
    """Forget the current camera matrices."""
    _camera_initialized.fill(0)


def get_camera_matrices() -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32]]:
    """Get the current (camera_to_world, inverse_projection) for debugging."""
    return (
        _camera_to_world.to_numpy().reshape(4, 4),
        _inverse_projection.to_numpy().reshape(4, 4),
    )


# =============================================================================
# Ray Generation (Taichi-compatible, GPU-callable)
# =============================================================================


@ti.func
def generate_camera_ray(uv: tm.vec2) -> Ray:
    """Generate a primary ray through a normalized image coordinate.

    Args:
        uv: Image coordinate in [-1, 1]^2; (-1, -1) is the bottom-left corner
            and (1, 1) the top-right corner.

    Returns:
        A ray starting at the camera position with unit direction and full
        energy.
    """
    c2w = _camera_to_world[None]

    # Camera origin in world space
    origin = (c2w @ tm.vec4(0.0, 0.0, 0.0, 1.0)).xyz

    # Unproject the clip-space point, then rotate it into world space
    view_dir = (_inverse_projection[None] @ tm.vec4(uv.x, uv.y, 0.0, 1.0)).xyz
    direction = (c2w @ tm.vec4(view_dir.x, view_dir.y, view_dir.z, 0.0)).xyz

    return make_ray(origin, tm.normalize(direction))


@ti.func
def pixel_to_uv(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    offset: tm.vec2,
) -> tm.vec2:
    """Convert a pixel index plus sub-pixel offset to [-1, 1]^2 coordinates.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.
        offset: Sub-pixel offset in [0, 1)^2. (0.5, 0.5) is the pixel center.

    Returns:
        The normalized image coordinate.
    """
    u = (ti.cast(pixel_i, ti.f32) + offset.x) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + offset.y) / ti.cast(height, ti.f32)
    return tm.vec2(u * 2.0 - 1.0, v * 2.0 - 1.0)
