"""Sphere primitive with analytic ray-sphere intersection.

The ray-sphere intersection solves

    |origin + t * direction - center|^2 = radius^2

for a unit-length direction. With d = origin - center the roots are

    t = p1 -/+ sqrt(p1^2 - dot(d, d) + radius^2),    p1 = -dot(direction, d)

The smaller root is the entry point. When it lies behind the origin (the ray
starts inside the sphere) the larger root is used instead.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.pathtracer.geometry.sphere import Sphere, intersect_sphere
    >>> # Inside a kernel:
    >>> # best = intersect_sphere(ray, sphere, best)
"""

import taichi as ti
import taichi.math as tm

from src.pathtracer.core.ray import Ray, RayHit

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere with its surface material.

    Attributes:
        position: The center of the sphere.
        radius: The radius of the sphere (positive).
        albedo: Diffuse color.
        specular: Specular (mirror) color.
        smoothness: Surface smoothness in [0, 1]. Stored, not used by the
            mirror shading model.
        emission: Emitted color. Stored, not used by the shading model.
    """

    position: vec3
    radius: ti.f32
    albedo: vec3
    specular: vec3
    smoothness: ti.f32
    emission: vec3


@ti.func
def sphere_distance(ray: Ray, center: vec3, radius: ti.f32) -> ti.f32:
    """Compute the ray parameter of the first ray-sphere intersection.

    Args:
        ray: The ray to test. Its direction must be unit length.
        center: The sphere center.
        radius: The sphere radius.

    Returns:
        The smaller positive root, the larger root if the smaller one is not
        positive, or -1 if the ray misses the sphere.
    """
    d = ray.origin - center
    p1 = -tm.dot(ray.direction, d)
    p2sqr = p1 * p1 - tm.dot(d, d) + radius * radius

    t = -1.0
    if p2sqr >= 0.0:
        p2 = ti.sqrt(p2sqr)
        t = p1 - p2
        if t <= 0.0:
            t = p1 + p2
    return t


@ti.func
def intersect_sphere(ray: Ray, sphere: Sphere, best: RayHit) -> RayHit:
    """Test a ray against a sphere and keep the closer of the two hits.

    Args:
        ray: The ray to test. Its direction must be unit length.
        sphere: The sphere to intersect.
        best: The closest hit found so far.

    Returns:
        A hit on the sphere if it is positive and closer than ``best``,
        otherwise ``best`` unchanged.
    """
    result = best
    t = sphere_distance(ray, sphere.position, sphere.radius)
    if t > 0.0 and t < best.distance:
        position = ray.origin + t * ray.direction
        result = RayHit(
            position=position,
            distance=t,
            normal=tm.normalize(position - sphere.position),
            albedo=sphere.albedo,
            specular=sphere.specular,
        )
    return result
