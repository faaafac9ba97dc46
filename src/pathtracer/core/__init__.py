"""Core rendering module.

Components:
    ray: Ray and hit record structures with vector utilities
    buffers: Releasable typed device buffers and images
    integrator: Mirror-bounce shading, directional light and render kernels
    progressive: Accumulation controller (ProgressiveRenderer)

All compute-intensive operations use Taichi kernels for GPU acceleration.
"""

from .buffers import BufferLayout, ImageBuffer, TypedBuffer, sync_typed_buffer
from .ray import (
    INF,
    Ray,
    RayHit,
    is_miss,
    is_zero,
    length_squared,
    make_miss,
    make_ray,
    ray_at,
    reflect,
    vec3,
)

# Note: integrator and progressive are NOT imported here to avoid circular imports.
# Import directly from src.pathtracer.core.integrator or src.pathtracer.core.progressive.
#
# For progressive rendering, use:
#   from src.pathtracer.core.progressive import ProgressiveRenderer

__all__ = [
    "Ray",
    "RayHit",
    "INF",
    "vec3",
    "make_ray",
    "make_miss",
    "is_miss",
    "is_zero",
    "ray_at",
    "length_squared",
    "reflect",
    "BufferLayout",
    "TypedBuffer",
    "ImageBuffer",
    "sync_typed_buffer",
]
