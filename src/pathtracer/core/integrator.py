"""Mirror-bounce path tracing integrator.

This module implements the per-pixel shading model and the kernels that run
it over a whole image:

- A primary ray is generated from the camera matrices for every pixel, with a
  sub-pixel jitter offset shared by all pixels of one dispatch.
- Each bounce traces the closest hit, adds direct light from a single
  directional light (with a hard shadow ray), and continues along the perfect
  mirror reflection, attenuated by the surface's specular color.
- A ray that escapes the scene picks up the skybox radiance and terminates.

The loop runs at most MAX_BOUNCES times and stops as soon as the ray energy
is exactly zero in every channel. The result is linear radiance; it is not
clamped.

Key features:
    - Directional light with hard shadows
    - Specular energy attenuation across bounces
    - Equirectangular skybox on escape, scaled by SKYBOX_EXPOSURE
    - Separate sample and converged images blended by weight

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.pathtracer.core.integrator import (
    ...     DirectionalLight, RenderTarget, setup_light, trace_sample, blend_sample
    ... )
    >>> setup_light(DirectionalLight(direction=(0.3, -1.0, 0.2), intensity=1.0))
    >>> target = RenderTarget(640, 360)
    >>> trace_sample(target, manager.buffers, skybox, offset=(0.5, 0.5))
    >>> blend_sample(target, weight=1.0)
"""

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.pathtracer.camera.pinhole import (
    generate_camera_ray,
    is_camera_initialized,
    pixel_to_uv,
)
from src.pathtracer.core.buffers import ImageBuffer
from src.pathtracer.core.ray import Ray, RayHit, is_miss, is_zero, make_ray, reflect
from src.pathtracer.scene.intersection import trace_closest
from src.pathtracer.scene.skybox import sample_skybox

if TYPE_CHECKING:
    from src.pathtracer.scene.buffers import GeometryBuffers
    from src.pathtracer.scene.skybox import Skybox

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Maximum ray bounces (path length)
MAX_BOUNCES = 8

# Ray offset along the surface normal to avoid self-intersection
RAY_EPSILON = 0.001

# Multiplier applied to skybox radiance
SKYBOX_EXPOSURE = 1.4

# =============================================================================
# Light Source Configuration
# =============================================================================


@dataclass(frozen=True)
class DirectionalLight:
    """A directional light such as the sun.

    Attributes:
        direction: Direction the light travels in (from the light toward the
            scene). Does not need to be normalized but must be non-zero.
        intensity: Scalar brightness multiplier, non-negative.
    """

    direction: tuple[float, float, float] = (0.3, -1.0, 0.4)
    intensity: float = 1.0

    @classmethod
    def from_euler(cls, pitch: float, yaw: float, intensity: float = 1.0) -> "DirectionalLight":
        """Build a light from rotation angles in degrees.

        Args:
            pitch: Angle below the horizon. 90 points straight down.
            yaw: Rotation about the vertical axis. 0 points toward +z.
            intensity: Scalar brightness multiplier.
        """
        p = math.radians(pitch)
        y = math.radians(yaw)
        direction = (math.cos(p) * math.sin(y), -math.sin(p), math.cos(p) * math.cos(y))
        return cls(direction=direction, intensity=intensity)

    def normalized_direction(self) -> tuple[float, float, float]:
        """Return the unit light direction.

        Raises:
            ValueError: If the direction is zero-length or not finite.
        """
        x, y, z = (float(c) for c in self.direction)
        length = math.sqrt(x * x + y * y + z * z)
        if not math.isfinite(length) or length < 1e-8:
            raise ValueError(f"Light direction must be finite and non-zero, got {self.direction}")
        return (x / length, y / length, z / length)


# The light state lives in its own SNode tree, which is never destroyed
_light_direction = ti.Vector.field(3, dtype=ti.f32)
_light_intensity = ti.field(dtype=ti.f32)
_light_initialized = ti.field(dtype=ti.i32)
_light_fields = ti.FieldsBuilder()
_light_fields.place(_light_direction, _light_intensity, _light_initialized)
_light_tree = _light_fields.finalize()


@ti.kernel
def _load_light(direction: vec3, intensity: ti.f32, initialized: ti.i32):
    _light_direction[None] = direction
    _light_intensity[None] = intensity
    _light_initialized[None] = initialized


def setup_light(light: DirectionalLight) -> None:
    """Configure the directional light used for direct lighting.

    Args:
        light: The light to use.

    Raises:
        ValueError: If the direction is zero or the intensity is negative or
            not finite.
    """
    direction = light.normalized_direction()
    if not math.isfinite(light.intensity) or light.intensity < 0.0:
        raise ValueError(f"Light intensity must be finite and >= 0, got {light.intensity}")

    _load_light(vec3(*direction), light.intensity, 1)


def get_light() -> DirectionalLight:
    """Get the currently configured light (direction normalized)."""
    d = _light_direction.to_numpy()
    return DirectionalLight(
        direction=(float(d[0]), float(d[1]), float(d[2])),
        intensity=float(_light_intensity.to_numpy()),
    )


def is_light_initialized() -> bool:
    """Check whether setup_light has been called."""
    return bool(_light_initialized.to_numpy())


def clear_light() -> None:
    """Forget the current light."""
    _light_initialized.fill(0)


# =============================================================================
# Render Target (Image Buffers)
# =============================================================================


class RenderTarget:
    """The pair of images written by one frame.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        sample: The image the trace kernel writes a single sample into.
        converged: The running average of all samples since the last reset.
    """

    def __init__(self, width: int, height: int) -> None:
        """Allocate both images and clear them.

        Raises:
            ValueError: If either dimension is not positive.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Resolution must be positive, got {width}x{height}")

        self.width = width
        self.height = height
        self.sample = ImageBuffer(width, height)
        self.converged = ImageBuffer(width, height)
        self.clear()

    @property
    def released(self) -> bool:
        """Whether the images have been released."""
        return self.sample.released

    def clear(self) -> None:
        """Zero both images."""
        self._check_not_released()
        self.sample.clear()
        self.converged.clear()

    def _check_not_released(self) -> None:
        if self.released:
            raise RuntimeError("Render target has been released")

    def release(self) -> None:
        """Release both images. Safe to call more than once."""
        self.sample.release()
        self.converged.release()

    def __repr__(self) -> str:
        return f"RenderTarget({self.width}x{self.height}, released={self.released})"


# =============================================================================
# Shading Core
# =============================================================================


@ti.func
def shade(
    ray: Ray,
    hit: RayHit,
    light_direction: vec3,
    light_intensity: ti.f32,
    sky: ti.template(),
    spheres: ti.template(),
    mesh_objects: ti.template(),
    vertices: ti.template(),
    indices: ti.template(),
    sphere_count: ti.i32,
    mesh_count: ti.i32,
):
    """Shade one hit record and set up the next bounce.

    On a miss, the returned ray has zero energy and the color is the skybox
    radiance. On a hit, the returned ray starts just above the surface, points
    along the mirror reflection and carries energy multiplied by the surface's
    specular color; the color is the diffuse direct light, or zero if the
    surface point is in shadow.

    The color is not weighted by the incoming ray energy; the caller does
    that.

    Args:
        ray: The ray that produced ``hit``.
        hit: The closest hit for ``ray``.
        light_direction: Unit direction the light travels in.
        light_intensity: Light brightness.
        sky: The skybox field.
        spheres, mesh_objects, vertices, indices: Scene buffer fields.
        sphere_count: Number of spheres.
        mesh_count: Number of mesh objects.

    Returns:
        A tuple of (color, next_ray).
    """
    color = vec3(0.0, 0.0, 0.0)
    next_ray = ray

    if is_miss(hit):
        next_ray.energy = vec3(0.0, 0.0, 0.0)
        color = sample_skybox(sky, ray.direction) * SKYBOX_EXPOSURE
    else:
        origin = hit.position + hit.normal * RAY_EPSILON
        next_ray = Ray(
            origin=origin,
            direction=reflect(ray.direction, hit.normal),
            energy=ray.energy * hit.specular,
        )

        # Hard shadow toward the light
        shadow_ray = make_ray(origin, -light_direction)
        shadow_hit = trace_closest(
            shadow_ray, spheres, mesh_objects, vertices, indices, sphere_count, mesh_count
        )
        if is_miss(shadow_hit):
            n_dot_l = tm.max(0.0, tm.dot(hit.normal, -light_direction))
            color = n_dot_l * light_intensity * hit.albedo

    return color, next_ray


@ti.func
def trace_pixel(
    ray: Ray,
    light_direction: vec3,
    light_intensity: ti.f32,
    sky: ti.template(),
    spheres: ti.template(),
    mesh_objects: ti.template(),
    vertices: ti.template(),
    indices: ti.template(),
    sphere_count: ti.i32,
    mesh_count: ti.i32,
) -> vec3:
    """Run the bounded bounce loop for one primary ray.

    Returns:
        The linear radiance gathered along the path.
    """
    result = vec3(0.0, 0.0, 0.0)
    current = ray

    # Taichi funcs cannot break out of loops, so spent rays just skip
    for _ in range(MAX_BOUNCES):
        if not is_zero(current.energy):
            hit = trace_closest(
                current, spheres, mesh_objects, vertices, indices, sphere_count, mesh_count
            )
            energy = current.energy
            color, next_ray = shade(
                current,
                hit,
                light_direction,
                light_intensity,
                sky,
                spheres,
                mesh_objects,
                vertices,
                indices,
                sphere_count,
                mesh_count,
            )
            result += energy * color
            current = next_ray

    return result


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _trace_sample_kernel(
    target: ti.template(),
    sky: ti.template(),
    spheres: ti.template(),
    mesh_objects: ti.template(),
    vertices: ti.template(),
    indices: ti.template(),
    sphere_count: ti.i32,
    mesh_count: ti.i32,
    offset_x: ti.f32,
    offset_y: ti.f32,
):
    """Trace one sample per pixel into ``target``."""
    light_direction = _light_direction[None]
    light_intensity = _light_intensity[None]
    width = target.shape[0]
    height = target.shape[1]
    offset = tm.vec2(offset_x, offset_y)

    for i, j in target:
        uv = pixel_to_uv(i, j, width, height, offset)
        ray = generate_camera_ray(uv)
        target[i, j] = trace_pixel(
            ray,
            light_direction,
            light_intensity,
            sky,
            spheres,
            mesh_objects,
            vertices,
            indices,
            sphere_count,
            mesh_count,
        )


@ti.kernel
def _blend_kernel(sample: ti.template(), converged: ti.template(), weight: ti.f32):
    """Blend ``sample`` into ``converged`` with the given weight."""
    for i, j in converged:
        converged[i, j] = converged[i, j] * (1.0 - weight) + sample[i, j] * weight


@ti.kernel
def _trace_ray_kernel(
    origin: tm.vec3,
    direction: tm.vec3,
    sky: ti.template(),
    spheres: ti.template(),
    mesh_objects: ti.template(),
    vertices: ti.template(),
    indices: ti.template(),
    sphere_count: ti.i32,
    mesh_count: ti.i32,
) -> tm.vec3:
    """Trace a single ray through the bounce loop."""
    return trace_pixel(
        make_ray(origin, tm.normalize(direction)),
        _light_direction[None],
        _light_intensity[None],
        sky,
        spheres,
        mesh_objects,
        vertices,
        indices,
        sphere_count,
        mesh_count,
    )


# =============================================================================
# Public Rendering API
# =============================================================================


def _check_ready() -> None:
    if not is_camera_initialized():
        raise RuntimeError("Camera not set up. Call setup_camera() first.")
    if not is_light_initialized():
        raise RuntimeError("Light not set up. Call setup_light() first.")


def trace_sample(
    target: RenderTarget,
    geometry: "GeometryBuffers",
    skybox: "Skybox",
    offset: tuple[float, float] = (0.5, 0.5),
) -> None:
    """Trace one sample per pixel into ``target.sample``.

    Args:
        target: The render target to write to.
        geometry: The uploaded scene buffers.
        skybox: The environment map.
        offset: Sub-pixel offset in [0, 1)^2 applied to every pixel.

    Raises:
        RuntimeError: If the camera or light has not been set up, or a
            resource has been released.
    """
    _check_ready()
    target._check_not_released()
    _trace_sample_kernel(
        target.sample.field,
        skybox.field,
        *geometry.kernel_args(),
        float(offset[0]),
        float(offset[1]),
    )


def blend_sample(target: RenderTarget, weight: float) -> None:
    """Blend the last sample into the converged image.

    ``converged = converged * (1 - weight) + sample * weight``, so a weight
    of 1 replaces the converged image with the sample.
    """
    if not 0.0 < weight <= 1.0:
        raise ValueError(f"Blend weight must be in (0, 1], got {weight}")
    target._check_not_released()
    _blend_kernel(target.sample.field, target.converged.field, weight)


def trace_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    geometry: "GeometryBuffers",
    skybox: "Skybox",
) -> tuple[float, float, float]:
    """Trace a single ray through the bounce loop.

    This is a Python-callable function for testing and debugging. For
    rendering, use trace_sample() which processes all pixels in parallel.

    Returns:
        Tuple of (R, G, B) linear radiance.
    """
    if not is_light_initialized():
        raise RuntimeError("Light not set up. Call setup_light() first.")
    color = _trace_ray_kernel(
        tm.vec3(*origin),
        tm.vec3(*direction),
        skybox.field,
        *geometry.kernel_args(),
    )
    return (float(color[0]), float(color[1]), float(color[2]))


def quantize_image(image: npt.NDArray[Any], gamma: float = 2.2) -> npt.NDArray[np.uint8]:
    """Clamp a linear image to [0, 1], gamma encode and quantize to 8 bits."""
    if gamma <= 0.0:
        raise ValueError(f"Gamma must be positive, got {gamma}")
    clamped = np.clip(image, 0.0, 1.0)
    if gamma != 1.0:
        clamped = np.power(clamped, 1.0 / gamma)
    return (clamped * 255.0 + 0.5).astype(np.uint8)
