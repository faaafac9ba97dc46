"""Infinite ground plane at y = 0.

The ground plane is the only non-sphere analytic surface in the scene. It is
horizontal, faces up, and uses a fixed grey material that is barely
reflective.
"""

import taichi as ti
import taichi.math as tm

from src.pathtracer.core.ray import Ray, RayHit

# Type alias for 3D vectors
vec3 = tm.vec3

# Ground plane material
GROUND_ALBEDO = (0.8, 0.8, 0.8)
GROUND_SPECULAR = (0.03, 0.03, 0.03)

# Rays closer than this to parallel with the plane never hit it
PARALLEL_EPSILON = 1e-8


@ti.func
def intersect_ground_plane(ray: Ray, best: RayHit) -> RayHit:
    """Test a ray against the y = 0 plane and keep the closer hit.

    Solves origin.y + t * direction.y = 0 for t and accepts the hit only if
    it is in front of the ray origin and closer than ``best``.

    Args:
        ray: The ray to test.
        best: The closest hit found so far.

    Returns:
        A hit on the ground plane, or ``best`` unchanged.
    """
    result = best
    if ti.abs(ray.direction.y) > PARALLEL_EPSILON:
        t = -ray.origin.y / ray.direction.y
        if t > 0.0 and t < best.distance:
            result = RayHit(
                position=ray.origin + t * ray.direction,
                distance=t,
                normal=vec3(0.0, 1.0, 0.0),
                albedo=vec3(GROUND_ALBEDO[0], GROUND_ALBEDO[1], GROUND_ALBEDO[2]),
                specular=vec3(GROUND_SPECULAR[0], GROUND_SPECULAR[1], GROUND_SPECULAR[2]),
            )
    return result
